# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for the low-rank diffusion problem and its time integration."""

from __future__ import annotations

import logging
from unittest.mock import patch

import numpy as np
import pytest
import scipy.linalg

from mqt.sylvester import LowRankState, SolverParams
from mqt.sylvester.core.backends import CPUBackend
from mqt.sylvester.diffusion import DiffusionProblem, evolve, ndgrid, second_difference_matrix


def test_second_difference_matrix() -> None:
    """Three-point stencil scaled by the squared spacing."""
    expected = np.array([
        [-8.0, 4.0, 0.0, 0.0],
        [4.0, -8.0, 4.0, 0.0],
        [0.0, 4.0, -8.0, 4.0],
        [0.0, 0.0, 4.0, -8.0],
    ])
    np.testing.assert_allclose(second_difference_matrix(4, 0.5).toarray(), expected)


@pytest.mark.parametrize(("num_points", "spacing"), [(0, 1.0), (3, 0.0), (3, -0.1)])
def test_second_difference_matrix_invalid(num_points: int, spacing: float) -> None:
    """Empty grids and non-positive spacings are rejected."""
    with pytest.raises(ValueError, match="Invalid grid"):
        second_difference_matrix(num_points, spacing)


def test_ndgrid() -> None:
    """The first index runs over x, the second over y."""
    x_grid, y_grid = ndgrid(np.array([0.0, 1.0, 2.0]), np.array([5.0, 6.0]))
    assert x_grid.shape == (3, 2)
    np.testing.assert_array_equal(x_grid[:, 0], [0.0, 1.0, 2.0])
    np.testing.assert_array_equal(y_grid[0, :], [5.0, 6.0])


def test_problem_geometry() -> None:
    """Spacings, coordinates and the shape of the unknowns."""
    problem = DiffusionProblem(lx=2.0, ly=1.0, nx=11, ny=6)

    assert problem.dx == pytest.approx(0.2)
    assert problem.dy == pytest.approx(0.2)
    assert problem.shape == (10, 5)
    assert problem.x.shape == (10,)
    assert problem.y[0] == 0.0


@pytest.mark.parametrize("kwargs", [{"nx": 1}, {"ny": 0}, {"lx": 0.0}, {"ly": -1.0}])
def test_problem_validation(kwargs: dict[str, float]) -> None:
    """Degenerate grids are rejected."""
    with pytest.raises(ValueError):
        DiffusionProblem(**kwargs)


def test_operators() -> None:
    """Both operators are symmetric, match their dense form and split the identity."""
    problem = DiffusionProblem(nx=9, ny=7, dt=0.1, d1=0.5, d2=0.25)
    a1, a2 = problem.operators()
    a1_dense, a2_dense = problem.operators(sparse=False)
    dxx = second_difference_matrix(8, problem.dx).toarray()
    dyy = second_difference_matrix(6, problem.dy).toarray()

    np.testing.assert_allclose(a1.toarray(), a1_dense)
    np.testing.assert_allclose(a2.toarray(), a2_dense)
    np.testing.assert_allclose(a1_dense, a1_dense.T)
    np.testing.assert_allclose(a1_dense, 0.5 * np.eye(8) - 0.1 * 0.25 * dxx)
    np.testing.assert_allclose(a2_dense, 0.5 * np.eye(6) - 0.1 * 0.0625 * dyy)


def test_initial_condition() -> None:
    """The larger bump peaks at (0.65, 0.5) and the field has rank two."""
    problem = DiffusionProblem()
    field = problem.initial_condition()

    assert field.shape == (100, 100)
    assert field[65, 50] == pytest.approx(0.8, rel=1e-6)
    state = problem.initial_state(rel_tol=1e-3, max_rank=32)
    assert state.rank == 2
    np.testing.assert_allclose(state.to_dense(), field, atol=1e-10)


def test_evolve_matches_dense_time_stepping() -> None:
    """Low-rank implicit steps agree with dense Bartels-Stewart steps."""
    problem = DiffusionProblem(nx=21, ny=21)
    state = problem.initial_state(rel_tol=1e-10)
    params = SolverParams(rel_eps=1e-8, max_iter=10, max_rank=20)

    final, results = evolve(problem, state, 3, params)

    assert len(results) == 3
    assert all(result.converged for result in results)
    assert final.rank <= 20

    a1, a2 = problem.operators(sparse=False)
    dense = state.to_dense()
    for _ in range(3):
        dense = scipy.linalg.solve_sylvester(a1, a2.T, dense)
    error = np.linalg.norm(final.to_dense() - dense) / np.linalg.norm(dense)
    assert error < 1e-6


def test_evolve_dissipates() -> None:
    """The Frobenius norm of the field never grows."""
    problem = DiffusionProblem(nx=31, ny=31)
    state = problem.initial_state()
    norms = [np.linalg.norm(state.to_dense())]
    for _ in range(4):
        state, _ = evolve(problem, state, 1)
        norms.append(np.linalg.norm(state.to_dense()))

    assert all(later <= earlier + 1e-12 for earlier, later in zip(norms, norms[1:]))
    assert norms[-1] < norms[0]


def test_evolve_zero_steps() -> None:
    """Zero steps return the initial state."""
    problem = DiffusionProblem(nx=11, ny=11)
    state = problem.initial_state()

    final, results = evolve(problem, state, 0)

    assert final is state
    assert results == []


def test_evolve_invalid_arguments() -> None:
    """Negative step counts and mismatched states are rejected."""
    problem = DiffusionProblem(nx=11, ny=11)
    with pytest.raises(ValueError, match="non-negative"):
        evolve(problem, problem.initial_state(), -1)
    with pytest.raises(ValueError, match="does not match"):
        evolve(problem, LowRankState.zeros(5, 5), 1)


def test_evolve_factorizes_once() -> None:
    """All time steps share one workspace, so each operator is factorized once."""
    problem = DiffusionProblem(nx=11, ny=11)
    with patch.object(CPUBackend, "factorize", autospec=True, side_effect=CPUBackend.factorize) as spy:
        _, results = evolve(problem, problem.initial_state(), 3)

    assert len(results) == 3
    assert spy.call_count == 2


def test_evolve_warns_once_per_unconverged_step(caplog: pytest.LogCaptureFixture) -> None:
    """Each time step without convergence produces a single warning."""
    problem = DiffusionProblem(nx=31, ny=31)
    params = SolverParams(rel_eps=1e-16, rel_tol=1e-8, max_iter=1, max_rank=30)

    with caplog.at_level(logging.WARNING):
        _, results = evolve(problem, problem.initial_state(), 2, params)

    assert not any(result.converged for result in results)
    warnings = [
        record
        for record in caplog.records
        if record.levelno == logging.WARNING and record.name.startswith("mqt.sylvester")
    ]
    assert len(warnings) == 2
