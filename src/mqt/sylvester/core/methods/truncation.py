# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""SVD Truncation.

This module compresses the reduced core of the extended Krylov iteration into a low-rank state. The core is
decomposed with an SVD, singular values below a relative tolerance are discarded (subject to a hard rank
ceiling) and the singular vectors are joined with the Krylov bases.

The rank selection relies on the singular values being sorted in descending order. This postcondition of the
SVD routines is checked rather than assumed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from ..data_structures.low_rank_state import LowRankState

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ..backends import LinearAlgebraBackend
    from ..data_structures.workspace import ExtendedKrylovWorkspace


def select_rank(singular_values: NDArray[np.float64], rel_tol: float, max_rank: int) -> int:
    """Number of singular values to keep.

    Counts the singular values strictly larger than ``rel_tol`` times the largest one and caps the count at
    ``max_rank``.

    Args:
        singular_values: Singular values in descending order.
        rel_tol: Relative truncation tolerance.
        max_rank: Maximum rank.

    Returns:
        int: The new rank. Zero if there are no singular values or all of them vanish.

    Raises:
        ValueError: If the singular values are not sorted in descending order.
    """
    s_vec = np.asarray(singular_values, dtype=np.float64)
    if s_vec.size == 0:
        return 0
    if np.any(np.diff(s_vec) > 0):
        msg = "Singular values must be sorted in descending order."
        raise ValueError(msg)
    rank = int(np.count_nonzero(s_vec > rel_tol * s_vec[0]))
    return min(rank, max_rank)


def truncate_factors(
    u_basis: Any,  # noqa: ANN401
    core: Any,  # noqa: ANN401
    v_basis: Any,  # noqa: ANN401
    rel_tol: float,
    max_rank: int,
    backend: LinearAlgebraBackend,
) -> LowRankState:
    """Truncate ``u_basis @ core @ v_basis.T`` to a low-rank state.

    Args:
        u_basis: Left basis with orthonormal columns.
        core: Dense core.
        v_basis: Right basis with orthonormal columns.
        rel_tol: Relative truncation tolerance.
        max_rank: Maximum rank.
        backend: The backend owning the factors.

    Returns:
        LowRankState: The truncated state with a diagonal core. Its factors live in backend memory.
    """
    if core.shape[0] == 0 or core.shape[1] == 0:
        return LowRankState(
            backend.zeros((u_basis.shape[0], 0)), backend.zeros((0, 0)), backend.zeros((v_basis.shape[0], 0))
        )
    u_tilde, s_tilde, v_tilde = backend.svd(core)
    rank = select_rank(backend.to_host(s_tilde), rel_tol, max_rank)

    s_new = backend.diag(s_tilde[:rank])
    u_new = u_basis @ u_tilde[:, :rank]
    v_new = v_basis @ v_tilde[:, :rank]
    return LowRankState(u_new, s_new, v_new)


def apply_svd_truncation(ws: ExtendedKrylovWorkspace, rel_tol: float, max_rank: int) -> LowRankState:
    """Truncate the reduced core held by a workspace and join it with the Krylov bases.

    Args:
        ws: The workspace after the Krylov iteration.
        rel_tol: Relative truncation tolerance.
        max_rank: Maximum rank.

    Returns:
        LowRankState: The new state.
    """
    return truncate_factors(ws.basis_u(), ws.core(), ws.basis_v(), rel_tol, max_rank, ws.backend)
