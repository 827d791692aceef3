# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Extended Krylov Sylvester Solver.

This module implements the solver for

    A1 X + X A2^T + U_old S_old V_old^T = 0,

where the right-hand side and the solution are low-rank factorizations. The routine
  - builds extended Krylov bases from ``U_old`` and ``V_old`` (forward and inverse powers of the operators),
  - solves the Galerkin-projected Sylvester equation on the small bases,
  - estimates the residual from small projected matrices, stopping as soon as its spectral norm drops below
    ``rel_eps`` times the largest singular value of ``S_old``,
  - truncates the reduced solution with an SVD.

The cost of each iteration is linear in the operator size; no ``Nx x Ny`` matrix is ever formed.
Reaching the iteration budget is not an error. It is reported through `SolverResult.converged`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .core.backends import Backend
from .core.data_structures.low_rank_state import LowRankState
from .core.data_structures.solver_parameters import SolverParams
from .core.data_structures.workspace import ExtendedKrylovWorkspace
from .core.methods.krylov_bases import initialize_bases, shuffle_iterates, update_bases_and_orthogonalize
from .core.methods.reduced_sylvester import solve_reduced_system
from .core.methods.residual import estimate_residual, residual_threshold
from .core.methods.truncation import apply_svd_truncation

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

__all__ = ["SolverResult", "extended_krylov_step", "solve"]


@dataclass
class SolverResult:
    """Outcome of one extended Krylov solve."""

    state: LowRankState
    iterations: int
    converged: bool
    residual_norm: float
    threshold: float
    residual_history: list[float] = field(default_factory=list)


def solve(
    state_old: LowRankState,
    a1: Any,  # noqa: ANN401
    a2: Any,  # noqa: ANN401
    params: SolverParams | None = None,
    workspace: ExtendedKrylovWorkspace | None = None,
) -> SolverResult:
    """Approximately solve ``A1 X + X A2^T + U_old S_old V_old^T = 0`` in low-rank form.

    Args:
        state_old: The right-hand side ``U_old S_old V_old^T``, typically the state of the previous time level.
        a1: Square ``Nx x Nx`` operator (dense or sparse).
        a2: Square ``Ny x Ny`` operator (dense or sparse).
        params: Solver parameters. Defaults to `SolverParams()`.
        workspace: Optional workspace to reuse. It must have been created for ``a1`` and ``a2``; its factorized
            operators and its backend are used instead of ``params.backend``.

    Returns:
        SolverResult: The truncated solution, the iteration count and the convergence information.

    Raises:
        ValueError: If the dimensions of the state, the operators or the workspace do not match.
        SingularOperatorError: If ``a1`` or ``a2`` is singular.
    """
    if params is None:
        params = SolverParams()

    nx, ny = state_old.shape
    if a1.shape != (nx, nx) or a2.shape != (ny, ny):
        msg = f"Operators of shapes {a1.shape} and {a2.shape} do not match a state of shape {(nx, ny)}."
        raise ValueError(msg)

    if state_old.rank == 0:
        logger.info("Right-hand side has rank zero; the solution is zero.")
        return SolverResult(LowRankState.zeros(nx, ny), 0, converged=True, residual_norm=0.0, threshold=0.0)

    if workspace is None:
        workspace = ExtendedKrylovWorkspace(
            a1, a2, capacity=max(params.max_rank, state_old.rank), max_iter=params.max_iter, backend=params.backend
        )
    elif workspace.max_iter < params.max_iter:
        msg = f"Workspace sized for max_iter={workspace.max_iter} cannot run max_iter={params.max_iter}."
        raise ValueError(msg)
    b = workspace.backend

    initialize_bases(workspace, state_old)
    u_old, s_old, v_old = (b.asarray(factor) for factor in state_old.factors())
    threshold = residual_threshold(s_old, params.rel_eps, b)
    if threshold == 0.0:
        logger.info("Right-hand side core vanishes; the solution is zero.")
        return SolverResult(LowRankState.zeros(nx, ny), 0, converged=True, residual_norm=0.0, threshold=0.0)

    history: list[float] = []
    converged = False
    iterations = params.max_iter
    for iteration in range(1, params.max_iter + 1):
        update_bases_and_orthogonalize(workspace)
        reduced = solve_reduced_system(workspace, u_old, s_old, v_old)
        residual_norm = estimate_residual(workspace, reduced)
        history.append(residual_norm)
        logger.debug(
            "Iteration %d: basis sizes (%d, %d), residual %.3e, threshold %.3e",
            iteration,
            workspace.u_ncols,
            workspace.v_ncols,
            residual_norm,
            threshold,
        )
        if residual_norm < threshold:
            converged = True
            iterations = iteration
            break
        shuffle_iterates(workspace)

    if not converged:
        logger.warning(
            "Extended Krylov solver did not converge in %d iterations (residual %.3e, threshold %.3e).",
            params.max_iter,
            history[-1],
            threshold,
        )

    state_new = apply_svd_truncation(workspace, params.rel_tol, params.max_rank)
    b.synchronize(*state_new.factors())
    logger.info("Solve finished after %d iterations with rank %d.", iterations, state_new.rank)
    return SolverResult(state_new, iterations, converged, history[-1], threshold, history)


def extended_krylov_step(
    u_old: NDArray[Any] | Any,  # noqa: ANN401
    s_old: NDArray[Any] | Any,  # noqa: ANN401
    v_old: NDArray[Any] | Any,  # noqa: ANN401
    a1: Any,  # noqa: ANN401
    a2: Any,  # noqa: ANN401
    rel_eps: float = 1e-3,
    max_iter: int = 10,
    max_rank: int = 32,
    backend: Backend | str | None = Backend.CPU,
) -> tuple[Any, Any, Any, int]:
    """Factor-level entry point of the solver.

    Args:
        u_old: Left basis of the right-hand side.
        s_old: Core of the right-hand side.
        v_old: Right basis of the right-hand side.
        a1: Left operator.
        a2: Right operator.
        rel_eps: Relative tolerance of the stopping criterion and of the truncation.
        max_iter: Maximum number of Krylov iterations.
        max_rank: Maximum rank of the solution.
        backend: Backend kind.

    Returns:
        tuple: ``(U_new, S_new, V_new, iterations)``. ``iterations == max_iter`` may indicate that the iteration
        did not converge; use `solve` for an explicit flag.
    """
    params = SolverParams(rel_eps=rel_eps, max_iter=max_iter, max_rank=max_rank, backend=backend)
    result = solve(LowRankState(u_old, s_old, v_old), a1, a2, params)
    u_new, s_new, v_new = result.state.factors()
    return u_new, s_new, v_new, result.iterations
