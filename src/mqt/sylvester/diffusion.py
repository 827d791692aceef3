# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Low-rank diffusion on a rectangle.

This module sets up the two-dimensional diffusion problem that drives the extended Krylov solver. On a
uniform grid with homogeneous Dirichlet boundaries the implicit step

    X_new - dt (d1^2 Dxx X_new + d2^2 X_new Dyy^T) = X_old

is a Sylvester equation ``A1 X_new + X_new A2^T = X_old`` with

    A1 = shift I - dt d1^2 Dxx,    A2 = (1 - shift) I - dt d2^2 Dyy.

The default ``shift = 0.5`` splits the identity evenly between both operators (backward Euler). The field is
kept in low-rank form for the whole time integration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import scipy.sparse
from tqdm import tqdm

from .core.data_structures.low_rank_state import LowRankState
from .core.data_structures.solver_parameters import SolverParams
from .core.data_structures.workspace import ExtendedKrylovWorkspace
from .solver import solve

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .solver import SolverResult

logger = logging.getLogger(__name__)


def ndgrid(x: NDArray[np.float64], y: NDArray[np.float64]) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Tensor grid with ``X[i, j] = x[i]`` and ``Y[i, j] = y[j]``."""
    return np.meshgrid(x, y, indexing="ij")


def second_difference_matrix(num_points: int, spacing: float) -> scipy.sparse.csr_matrix:
    """Central second-difference matrix ``tridiag(1, -2, 1) / h^2`` of size ``num_points``.

    Args:
        num_points: Number of grid points.
        spacing: Grid spacing ``h``.

    Returns:
        scipy.sparse.csr_matrix: The sparse matrix.

    Raises:
        ValueError: If ``num_points`` is smaller than one or the spacing is not positive.
    """
    if num_points < 1 or spacing <= 0:
        msg = f"Invalid grid: num_points={num_points}, spacing={spacing}."
        raise ValueError(msg)
    main = np.full(num_points, -2.0 / spacing**2)
    off = np.ones(num_points - 1) / spacing**2
    return scipy.sparse.diags([off, main, off], [-1, 0, 1], format="csr")


@dataclass
class DiffusionProblem:
    """Anisotropic diffusion on ``[0, lx] x [0, ly]``.

    The grid has ``nx x ny`` nodes; the last node in each direction carries the boundary condition and is
    excluded, so the unknowns form an ``(nx - 1) x (ny - 1)`` field.
    """

    lx: float = 1.0
    ly: float = 1.0
    nx: int = 101
    ny: int = 101
    dt: float = 1.0e-2
    d1: float = 0.5
    d2: float = 0.5
    shift: float = 0.5

    def __post_init__(self) -> None:
        """Validate the grid.

        Raises:
            ValueError: If a grid has fewer than two nodes or a domain length is not positive.
        """
        if self.nx < 2 or self.ny < 2:
            msg = f"Grids need at least two nodes per direction (got nx={self.nx}, ny={self.ny})."
            raise ValueError(msg)
        if self.lx <= 0 or self.ly <= 0:
            msg = f"Domain lengths must be positive (got lx={self.lx}, ly={self.ly})."
            raise ValueError(msg)

    @property
    def dx(self) -> float:
        """Grid spacing in x."""
        return self.lx / (self.nx - 1)

    @property
    def dy(self) -> float:
        """Grid spacing in y."""
        return self.ly / (self.ny - 1)

    @property
    def x(self) -> NDArray[np.float64]:
        """Coordinates of the unknowns in x."""
        return np.arange(self.nx - 1) * self.dx

    @property
    def y(self) -> NDArray[np.float64]:
        """Coordinates of the unknowns in y."""
        return np.arange(self.ny - 1) * self.dy

    @property
    def shape(self) -> tuple[int, int]:
        """Shape of the field of unknowns."""
        return self.nx - 1, self.ny - 1

    def operators(self, *, sparse: bool = True) -> tuple[scipy.sparse.csr_matrix, scipy.sparse.csr_matrix]:
        """Assemble ``A1`` and ``A2``.

        Args:
            sparse: Return SciPy CSR matrices if True, dense arrays otherwise.

        Returns:
            tuple: The operators ``(A1, A2)``.
        """
        dxx = second_difference_matrix(self.nx - 1, self.dx)
        dyy = second_difference_matrix(self.ny - 1, self.dy)
        a1 = self.shift * scipy.sparse.identity(self.nx - 1, format="csr") - self.dt * self.d1**2 * dxx
        a2 = (1.0 - self.shift) * scipy.sparse.identity(self.ny - 1, format="csr") - self.dt * self.d2**2 * dyy
        if sparse:
            return a1.tocsr(), a2.tocsr()
        return a1.toarray(), a2.toarray()

    def initial_condition(self) -> NDArray[np.float64]:
        """Two Gaussian bumps centered at ``(0.3, 0.35)`` and ``(0.65, 0.5)``."""
        x_grid, y_grid = ndgrid(self.x, self.y)
        return 0.5 * np.exp(-400 * (x_grid - 0.3) ** 2 - 400 * (y_grid - 0.35) ** 2) + 0.8 * np.exp(
            -400 * (x_grid - 0.65) ** 2 - 400 * (y_grid - 0.5) ** 2
        )

    def initial_state(self, rel_tol: float = 1e-3, max_rank: int = 32) -> LowRankState:
        """Low-rank compression of the initial condition."""
        return LowRankState.from_dense(self.initial_condition(), rel_tol=rel_tol, max_rank=max_rank)


def evolve(
    problem: DiffusionProblem,
    state: LowRankState,
    num_steps: int,
    params: SolverParams | None = None,
    *,
    sparse: bool = True,
    show_progress: bool = False,
) -> tuple[LowRankState, list[SolverResult]]:
    """Integrate the diffusion problem for ``num_steps`` implicit time steps.

    The operators are factorized once and a single workspace is reused for all steps.

    Args:
        problem: The diffusion problem.
        state: The initial low-rank state.
        num_steps: Number of time steps.
        params: Solver parameters of every step.
        sparse: Use sparse operators.
        show_progress: Display a progress bar.

    Returns:
        tuple: The final state and the `SolverResult` of every step.

    Raises:
        ValueError: If ``num_steps`` is negative or the state does not match the grid.
    """
    if num_steps < 0:
        msg = f"num_steps must be non-negative (got {num_steps})."
        raise ValueError(msg)
    if state.shape != problem.shape:
        msg = f"State of shape {state.shape} does not match the grid of unknowns {problem.shape}."
        raise ValueError(msg)
    if params is None:
        params = SolverParams()

    a1, a2 = problem.operators(sparse=sparse)
    workspace = ExtendedKrylovWorkspace(
        a1, a2, capacity=max(params.max_rank, state.rank), max_iter=params.max_iter, backend=params.backend
    )

    results: list[SolverResult] = []
    for step in tqdm(range(num_steps), desc="Time steps", ncols=80, disable=not show_progress):
        # A1 X + X A2^T = X_old  <=>  A1 X + X A2^T + (-X_old) = 0
        result = solve(state.scaled(-1.0), a1, a2, params, workspace=workspace)
        logger.debug("Time step %d: %d iterations, rank %d.", step + 1, result.iterations, result.state.rank)
        state = result.state
        results.append(result)
    return state, results
