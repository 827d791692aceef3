# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Extended Krylov Workspace.

This module implements the preallocated buffers used while building extended Krylov bases. The workspace
owns the coefficient operators, their LU factorizations and every matrix whose size is known up front:
  - the basis buffers ``U`` and ``V`` together with the number of valid leading columns,
  - previous/current slots for the forward iterates ``A1^k U`` and ``A2^k V``,
  - previous/current slots for the inverse iterates ``A1^{-k} U`` and ``A2^{-k} V``,
  - the dense core of the reduced Sylvester equation.

Buffer widths are fixed at construction and never change during the iteration; only the tracked column
counts do. A workspace can be reused for several solves with the same operators as long as the rank of the
right-hand side does not exceed the capacity it was built for. One workspace must never be shared by
concurrent solves.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..backends import Backend, LinearAlgebraBackend, get_backend

if TYPE_CHECKING:
    from .low_rank_state import LowRankState


def basis_width(dimension: int, block_cols: int, max_iter: int) -> int:
    """Upper bound on the number of basis columns after ``max_iter`` extended Krylov iterations.

    Every iteration appends one forward and one inverse block of ``block_cols`` columns to the basis, and a
    thin QR factorization never returns more columns than rows.

    Args:
        dimension: Number of rows of the basis.
        block_cols: Number of columns of the starting block.
        max_iter: Maximum number of iterations.

    Returns:
        int: The buffer width.
    """
    return min(dimension, block_cols * (2 * max_iter + 1))


class ExtendedKrylovWorkspace:
    """Buffers and operators of the extended Krylov iteration.

    Attributes:
    backend (LinearAlgebraBackend): Backend owning every buffer.
    a1, a2: The coefficient operators in backend memory.
    fa1, fa2: Their LU factorizations.
    capacity (int): Maximum rank of a right-hand side that fits into the iterate slots.
    max_iter (int): Iteration budget the basis buffers are sized for.
    rank (int): Rank of the right-hand side of the current solve.
    u_ncols, v_ncols (int): Number of valid leading columns of ``U`` and ``V``.
    """

    def __init__(
        self,
        a1: Any,  # noqa: ANN401
        a2: Any,  # noqa: ANN401
        capacity: int,
        max_iter: int,
        backend: LinearAlgebraBackend | Backend | str | None = None,
    ) -> None:
        """Initializes the workspace and factorizes the operators.

        Args:
            a1: Square ``Nx x Nx`` operator acting on the left (dense or sparse).
            a2: Square ``Ny x Ny`` operator acting on the right (dense or sparse).
            capacity: Maximum rank of the right-hand sides solved with this workspace.
            max_iter: Maximum number of Krylov iterations.
            backend: A backend instance or kind. Defaults to the configured backend.

        Raises:
            ValueError: If an operator is not square, or if ``capacity`` or ``max_iter`` is smaller than one.
            SingularOperatorError: If an operator is singular.
        """
        if len(a1.shape) != 2 or a1.shape[0] != a1.shape[1]:
            msg = f"A1 must be a square matrix (got shape {a1.shape})."
            raise ValueError(msg)
        if len(a2.shape) != 2 or a2.shape[0] != a2.shape[1]:
            msg = f"A2 must be a square matrix (got shape {a2.shape})."
            raise ValueError(msg)
        if capacity < 1 or max_iter < 1:
            msg = f"capacity and max_iter must be at least 1 (got {capacity} and {max_iter})."
            raise ValueError(msg)

        self.backend = backend if isinstance(backend, LinearAlgebraBackend) else get_backend(backend)
        self.nx = int(a1.shape[0])
        self.ny = int(a2.shape[0])
        self.capacity = int(capacity)
        self.max_iter = int(max_iter)

        b = self.backend
        self.a1 = b.to_device_operator(a1)
        self.a2 = b.to_device_operator(a2)
        # Factorization failures are fatal and not retried.
        self.fa1 = b.factorize(self.a1)
        self.fa2 = b.factorize(self.a2)

        self.u_width = basis_width(self.nx, self.capacity, self.max_iter)
        self.v_width = basis_width(self.ny, self.capacity, self.max_iter)

        self.U = b.zeros((self.nx, self.u_width))
        self.V = b.zeros((self.ny, self.v_width))
        self.u_ncols = 0
        self.v_ncols = 0
        self.rank = 0

        self.a1u_prev = b.zeros((self.nx, self.capacity))
        self.a1u_curr = b.zeros((self.nx, self.capacity))
        self.inv_a1u_prev = b.zeros((self.nx, self.capacity))
        self.inv_a1u_curr = b.zeros((self.nx, self.capacity))

        self.a2v_prev = b.zeros((self.ny, self.capacity))
        self.a2v_curr = b.zeros((self.ny, self.capacity))
        self.inv_a2v_prev = b.zeros((self.ny, self.capacity))
        self.inv_a2v_curr = b.zeros((self.ny, self.capacity))

        self.S1 = b.zeros((self.u_width, self.v_width))

    @property
    def shape(self) -> tuple[int, int]:
        """The shape ``(Nx, Ny)`` of the fields handled by this workspace."""
        return self.nx, self.ny

    def fits(self, state: LowRankState) -> bool:
        """Check whether a right-hand side can be solved with this workspace."""
        return state.shape == self.shape and state.rank <= self.capacity

    def check_compatible(self, state: LowRankState) -> None:
        """Validate a right-hand side against the workspace dimensions.

        Args:
            state: The right-hand side factorization.

        Raises:
            ValueError: If the field shape differs from the operator sizes or the rank exceeds the capacity.
        """
        if state.shape != self.shape:
            msg = f"State of shape {state.shape} does not match operators of sizes {self.shape}."
            raise ValueError(msg)
        if state.rank > self.capacity:
            msg = f"State rank {state.rank} exceeds the workspace capacity {self.capacity}."
            raise ValueError(msg)

    def basis_u(self) -> Any:  # noqa: ANN401
        """The valid leading columns of the left basis."""
        return self.U[:, : self.u_ncols]

    def basis_v(self) -> Any:  # noqa: ANN401
        """The valid leading columns of the right basis."""
        return self.V[:, : self.v_ncols]

    def core(self) -> Any:  # noqa: ANN401
        """The valid leading block of the reduced core."""
        return self.S1[: self.u_ncols, : self.v_ncols]

    def __repr__(self) -> str:
        """Return a short description of the workspace."""
        return (
            f"ExtendedKrylovWorkspace(shape={self.shape}, capacity={self.capacity}, max_iter={self.max_iter}, "
            f"backend={self.backend.name!r})"
        )
