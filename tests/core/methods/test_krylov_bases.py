# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for the construction of extended Krylov bases."""

from __future__ import annotations

import numpy as np
import pytest

from mqt.sylvester.core.data_structures.low_rank_state import LowRankState
from mqt.sylvester.core.data_structures.workspace import ExtendedKrylovWorkspace
from mqt.sylvester.core.methods.krylov_bases import (
    initialize_bases,
    orthogonalize_bases,
    shuffle_iterates,
    update_bases,
    update_bases_and_orthogonalize,
)


def _setup(max_iter: int = 3) -> tuple[ExtendedKrylovWorkspace, LowRankState, np.ndarray, np.ndarray]:
    nx, ny = 30, 25
    a1 = 4 * np.eye(nx) - np.eye(nx, k=1) - np.eye(nx, k=-1)
    a2 = 3 * np.eye(ny) - np.eye(ny, k=1) - np.eye(ny, k=-1) + 0.1 * np.diag(np.arange(ny))
    rng = np.random.default_rng(42)
    u = np.linalg.qr(rng.standard_normal((nx, 2)))[0]
    v = np.linalg.qr(rng.standard_normal((ny, 2)))[0]
    state = LowRankState(u, np.diag([2.0, 0.5]), v)
    ws = ExtendedKrylovWorkspace(a1, a2, capacity=2, max_iter=max_iter, backend="cpu")
    return ws, state, a1, a2


def _distance_to_span(basis: np.ndarray, x: np.ndarray) -> float:
    return float(np.linalg.norm(x - basis @ (basis.T @ x)) / np.linalg.norm(x))


def test_initialize_bases() -> None:
    """The bases and all previous iterates start from the factors of the state."""
    ws, state, _, _ = _setup()
    initialize_bases(ws, state)

    assert ws.rank == 2
    assert ws.u_ncols == 2
    assert ws.v_ncols == 2
    np.testing.assert_array_equal(ws.basis_u(), state.u)
    np.testing.assert_array_equal(ws.basis_v(), state.v)
    np.testing.assert_array_equal(ws.a1u_prev, state.u)
    np.testing.assert_array_equal(ws.inv_a1u_prev, state.u)
    np.testing.assert_array_equal(ws.a2v_prev, state.v)
    np.testing.assert_array_equal(ws.inv_a2v_prev, state.v)


def test_initialize_bases_rejects_incompatible_state() -> None:
    """States of the wrong shape are rejected."""
    ws, _, _, _ = _setup()
    with pytest.raises(ValueError):
        initialize_bases(ws, LowRankState.zeros(25, 30))


def test_update_bases() -> None:
    """Candidate blocks are the forward and inverse images of the previous iterates."""
    ws, state, a1, a2 = _setup()
    initialize_bases(ws, state)
    update_bases(ws)

    np.testing.assert_allclose(ws.a1u_curr, a1 @ state.u, atol=1e-12)
    np.testing.assert_allclose(ws.inv_a1u_curr, np.linalg.solve(a1, state.u), atol=1e-12)
    np.testing.assert_allclose(ws.a2v_curr, a2 @ state.v, atol=1e-12)
    np.testing.assert_allclose(ws.inv_a2v_curr, np.linalg.solve(a2, state.v), atol=1e-12)


def test_orthogonalize_bases() -> None:
    """After one step the bases are orthonormal and span the starting and candidate blocks."""
    ws, state, a1, a2 = _setup()
    initialize_bases(ws, state)
    update_bases_and_orthogonalize(ws)

    assert ws.u_ncols == 6
    assert ws.v_ncols == 6
    u = ws.basis_u()
    v = ws.basis_v()
    np.testing.assert_allclose(u.T @ u, np.eye(6), atol=1e-12)
    np.testing.assert_allclose(v.T @ v, np.eye(6), atol=1e-12)
    assert _distance_to_span(u, state.u) < 1e-12
    assert _distance_to_span(u, a1 @ state.u) < 1e-12
    assert _distance_to_span(u, np.linalg.solve(a1, state.u)) < 1e-12
    assert _distance_to_span(v, a2 @ state.v) < 1e-12


def test_shuffle_iterates() -> None:
    """Shuffling copies the current iterates; later writes do not alias the previous slots."""
    ws, state, a1, _ = _setup()
    initialize_bases(ws, state)
    update_bases(ws)
    shuffle_iterates(ws)

    expected = a1 @ state.u
    np.testing.assert_allclose(ws.a1u_prev, expected, atol=1e-12)
    ws.a1u_curr[:] = 0.0
    np.testing.assert_allclose(ws.a1u_prev, expected, atol=1e-12)


def test_second_step_contains_higher_powers() -> None:
    """Two steps add A1^2 U and A1^{-2} U to the basis."""
    ws, state, a1, _ = _setup()
    initialize_bases(ws, state)
    update_bases_and_orthogonalize(ws)
    shuffle_iterates(ws)
    update_bases_and_orthogonalize(ws)

    assert ws.u_ncols == 10
    u = ws.basis_u()
    np.testing.assert_allclose(u.T @ u, np.eye(10), atol=1e-12)
    assert _distance_to_span(u, a1 @ a1 @ state.u) < 1e-10
    assert _distance_to_span(u, np.linalg.solve(a1, np.linalg.solve(a1, state.u))) < 1e-10


def test_orthogonalize_beyond_buffer() -> None:
    """A workspace sized for one iteration cannot hold a second step."""
    ws, state, _, _ = _setup(max_iter=1)
    initialize_bases(ws, state)
    update_bases_and_orthogonalize(ws)
    shuffle_iterates(ws)
    update_bases(ws)
    with pytest.raises(ValueError, match="exceed the buffer widths"):
        orthogonalize_bases(ws)
