# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Projected Residual Estimate.

For ``X = U S V^T`` the residual of the Sylvester equation factorizes as

    A1 X + X A2^T + U B1_tilde V^T = [U, A1 U] [[B1_tilde, S], [S, 0]] [V, A2 V]^T.

With thin QR factorizations ``[U, A1 U] = Q_U R_U`` and ``[V, A2 V] = Q_V R_V`` its spectral norm equals the
spectral norm of the small matrix ``R_U [[B1_tilde, S], [S, 0]] R_V^T``. The residual is therefore measured
without forming any ``Nx x Ny`` matrix.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..backends import LinearAlgebraBackend
    from ..data_structures.workspace import ExtendedKrylovWorkspace
    from .reduced_sylvester import ReducedSystem


def residual_threshold(s_old: Any, rel_eps: float, backend: LinearAlgebraBackend) -> float:  # noqa: ANN401
    """Absolute stopping threshold ``rel_eps * sigma_max(S_old)``.

    Args:
        s_old: Core of the right-hand side in backend memory.
        rel_eps: Relative tolerance.
        backend: The backend owning ``s_old``.

    Returns:
        float: The threshold as a host scalar.
    """
    return rel_eps * backend.to_scalar(backend.spectral_norm(s_old))


def projected_residual(ws: ExtendedKrylovWorkspace, reduced: ReducedSystem) -> Any:  # noqa: ANN401
    """Assemble the small matrix whose spectral norm equals the norm of the full residual.

    Args:
        ws: The workspace holding the current bases.
        reduced: The reduced system of the current iteration.

    Returns:
        The matrix ``R_U [[B1_tilde, S], [S, 0]] R_V^T`` in backend memory.
    """
    b = ws.backend
    r_u = b.qr_r(b.hstack([ws.basis_u(), reduced.a1u]))
    r_v = b.qr_r(b.hstack([ws.basis_v(), reduced.a2v]))
    core = reduced.core
    block = b.block([[reduced.b1_tilde, core], [core, b.zeros(core.shape)]])
    return r_u @ block @ r_v.T


def estimate_residual(ws: ExtendedKrylovWorkspace, reduced: ReducedSystem) -> float:
    """Spectral norm of the residual of the current approximation.

    The value is transferred to the host, which synchronizes with the device.

    Returns:
        float: The estimated residual norm.
    """
    b = ws.backend
    return b.to_scalar(b.spectral_norm(projected_residual(ws, reduced)))
