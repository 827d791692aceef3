# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Extended Krylov Bases.

This module advances the extended Krylov subspaces of the left and right operators by one step. Each step
applies the operator (``A1^k U``) and its inverse (``A1^{-k} U``) to the previous iterates, appends both
blocks to the current basis and re-orthogonalizes the augmented block with a thin QR factorization.
Numerically rank-deficient blocks are accepted as they are; the basis simply keeps the column count the
QR factorization returns.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..data_structures.low_rank_state import LowRankState
    from ..data_structures.workspace import ExtendedKrylovWorkspace


def initialize_bases(ws: ExtendedKrylovWorkspace, state: LowRankState) -> None:
    """Load the bases of a right-hand side into the workspace. Applied prior to the Krylov iteration.

    Args:
        ws: The workspace.
        state: The right-hand side ``U_old S_old V_old^T``.
    """
    ws.check_compatible(state)
    b = ws.backend
    u = b.asarray(state.u)
    v = b.asarray(state.v)

    ws.rank = state.rank
    ws.u_ncols = state.rank
    ws.v_ncols = state.rank

    ws.U = b.write_columns(ws.U, u)
    ws.V = b.write_columns(ws.V, v)

    ws.a1u_prev = b.write_columns(ws.a1u_prev, u)
    ws.a2v_prev = b.write_columns(ws.a2v_prev, v)

    ws.inv_a1u_prev = b.write_columns(ws.inv_a1u_prev, u)
    ws.inv_a2v_prev = b.write_columns(ws.inv_a2v_prev, v)


def update_bases(ws: ExtendedKrylovWorkspace) -> None:
    """Compute the candidate blocks of the next extended Krylov step.

    Forward step ``A1U_curr = A1 A1U_prev`` and inverse step ``inv_A1U_curr = A1^{-1} inv_A1U_prev``; the same
    for ``A2`` and ``V``.
    """
    b = ws.backend
    r = ws.rank

    ws.a1u_curr = b.apply_operator_into(ws.a1u_curr, ws.a1, ws.a1u_prev[:, :r])
    ws.inv_a1u_curr = b.solve_into(ws.inv_a1u_curr, ws.fa1, ws.inv_a1u_prev[:, :r])

    ws.a2v_curr = b.apply_operator_into(ws.a2v_curr, ws.a2, ws.a2v_prev[:, :r])
    ws.inv_a2v_curr = b.solve_into(ws.inv_a2v_curr, ws.fa2, ws.inv_a2v_prev[:, :r])


def orthogonalize_bases(ws: ExtendedKrylovWorkspace) -> None:
    """Append the candidate blocks to the bases and orthogonalize with a thin QR factorization.

    Args:
        ws: The workspace. ``U``, ``V``, ``u_ncols`` and ``v_ncols`` are updated.

    Raises:
        ValueError: If the orthogonalized basis does not fit into the basis buffer.
    """
    b = ws.backend
    r = ws.rank

    u_aug = b.hstack([ws.basis_u(), ws.a1u_curr[:, :r], ws.inv_a1u_curr[:, :r]])
    v_aug = b.hstack([ws.basis_v(), ws.a2v_curr[:, :r], ws.inv_a2v_curr[:, :r]])

    q_u = b.materialize_q(b.thin_qr(u_aug).q_factor)
    q_v = b.materialize_q(b.thin_qr(v_aug).q_factor)

    if q_u.shape[1] > ws.u_width or q_v.shape[1] > ws.v_width:
        msg = (
            f"Orthogonalized bases with {q_u.shape[1]} and {q_v.shape[1]} columns exceed the buffer widths "
            f"{ws.u_width} and {ws.v_width}; the workspace was sized for max_iter={ws.max_iter}."
        )
        raise ValueError(msg)

    ws.u_ncols = int(q_u.shape[1])
    ws.v_ncols = int(q_v.shape[1])

    ws.U = b.write_columns(ws.U, q_u)
    ws.V = b.write_columns(ws.V, q_v)


def update_bases_and_orthogonalize(ws: ExtendedKrylovWorkspace) -> None:
    """Advance the extended Krylov bases by one step."""
    update_bases(ws)
    orthogonalize_bases(ws)


def shuffle_iterates(ws: ExtendedKrylovWorkspace) -> None:
    """Copy the current iterates into the previous slots for the next step."""
    b = ws.backend
    r = ws.rank

    ws.a1u_prev = b.write_columns(ws.a1u_prev, ws.a1u_curr[:, :r])
    ws.inv_a1u_prev = b.write_columns(ws.inv_a1u_prev, ws.inv_a1u_curr[:, :r])

    ws.a2v_prev = b.write_columns(ws.a2v_prev, ws.a2v_curr[:, :r])
    ws.inv_a2v_prev = b.write_columns(ws.inv_a2v_prev, ws.inv_a2v_curr[:, :r])
