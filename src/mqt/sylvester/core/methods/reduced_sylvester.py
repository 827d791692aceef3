# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Reduced Sylvester Equation.

Galerkin projection of

    A1 X + X A2^T + U_old S_old V_old^T = 0

onto the orthonormal bases ``U`` and ``V`` with ``X = U S V^T`` gives the small dense equation

    A1_tilde S + S A2_tilde^T + B1_tilde = 0,

with ``A1_tilde = U^T A1 U``, ``A2_tilde = V^T A2 V`` and ``B1_tilde = (U^T U_old) S_old (V_old^T V)``.
The reduced equation is solved with the Bartels-Stewart algorithm of SciPy on the host, independent of the
backend, since dense Sylvester solvers are not available on accelerators.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
import scipy.linalg

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..backends import LinearAlgebraBackend
    from ..data_structures.workspace import ExtendedKrylovWorkspace


class ReducedSystem(NamedTuple):
    """Projected quantities of one extended Krylov iteration.

    Attributes:
        a1u: The product ``A1 U``, reused by the residual estimate.
        a2v: The product ``A2 V``, reused by the residual estimate.
        b1_tilde: The projected right-hand side.
        core: The solution ``S`` of the reduced equation in backend memory.
    """

    a1u: Any
    a2v: Any
    b1_tilde: Any
    core: Any


def project_operators(ws: ExtendedKrylovWorkspace) -> tuple[Any, Any, Any, Any]:
    """Project the operators onto the current bases.

    Returns:
        tuple: ``(A1_tilde, A2_tilde, A1 U, A2 V)``.
    """
    b = ws.backend
    u = ws.basis_u()
    v = ws.basis_v()
    a1u = b.apply_operator(ws.a1, u)
    a2v = b.apply_operator(ws.a2, v)
    return u.T @ a1u, v.T @ a2v, a1u, a2v


def project_rhs(u: Any, v: Any, u_old: Any, s_old: Any, v_old: Any) -> Any:  # noqa: ANN401
    """Project the right-hand side ``U_old S_old V_old^T`` onto the bases ``U`` and ``V``.

    Returns:
        The matrix ``(U^T U_old) S_old (V_old^T V)``.
    """
    return (u.T @ u_old) @ s_old @ (v_old.T @ v)


def solve_reduced_sylvester(
    a1_tilde: NDArray[np.float64], a2_tilde: NDArray[np.float64], b1_tilde: NDArray[np.float64]
) -> NDArray[np.float64]:
    """Solve ``A1_tilde S + S A2_tilde^T + B1_tilde = 0`` for ``S``.

    Args:
        a1_tilde: Square matrix of size ``m``.
        a2_tilde: Square matrix of size ``n``.
        b1_tilde: Right-hand side of shape ``(m, n)``.

    Returns:
        NDArray[np.float64]: The solution ``S`` of shape ``(m, n)``.

    Raises:
        ValueError: If the shapes are incompatible.
    """
    a1_tilde = np.asarray(a1_tilde, dtype=np.float64)
    a2_tilde = np.asarray(a2_tilde, dtype=np.float64)
    b1_tilde = np.asarray(b1_tilde, dtype=np.float64)
    if b1_tilde.shape != (a1_tilde.shape[0], a2_tilde.shape[0]):
        msg = (
            f"Right-hand side of shape {b1_tilde.shape} does not match reduced operators of shapes "
            f"{a1_tilde.shape} and {a2_tilde.shape}."
        )
        raise ValueError(msg)
    # solve_sylvester treats A X + X B = Q
    return scipy.linalg.solve_sylvester(a1_tilde, a2_tilde.T, -b1_tilde)


def solve_reduced_system(
    ws: ExtendedKrylovWorkspace,
    u_old: Any,  # noqa: ANN401
    s_old: Any,  # noqa: ANN401
    v_old: Any,  # noqa: ANN401
) -> ReducedSystem:
    """Build and solve the reduced Sylvester equation for the current bases.

    The solution is stored in the leading block of the workspace core buffer.

    Args:
        ws: The workspace.
        u_old: Left basis of the right-hand side in backend memory.
        s_old: Core of the right-hand side in backend memory.
        v_old: Right basis of the right-hand side in backend memory.

    Returns:
        ReducedSystem: The projections and the reduced solution.
    """
    b: LinearAlgebraBackend = ws.backend
    a1_tilde, a2_tilde, a1u, a2v = project_operators(ws)
    b1_tilde = project_rhs(ws.basis_u(), ws.basis_v(), u_old, s_old, v_old)

    core_host = solve_reduced_sylvester(b.to_host(a1_tilde), b.to_host(a2_tilde), b.to_host(b1_tilde))
    core = b.asarray(core_host)
    ws.S1 = b.write_block(ws.S1, core)
    return ReducedSystem(a1u, a2v, b1_tilde, core)
