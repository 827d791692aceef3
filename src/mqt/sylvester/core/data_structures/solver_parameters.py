# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Solver Parameters.

This module defines the parameter object of the extended Krylov Sylvester solver. It bundles the
convergence tolerance, the iteration budget, the truncation settings and the backend selection, so that
callers pass a single explicit configuration instead of relying on module-level defaults.
"""

from __future__ import annotations

from ..backends import Backend


class SolverParams:
    """Configuration of a single extended Krylov solve.

    Attributes:
        rel_eps: Relative tolerance of the residual-based stopping criterion. The iteration stops as soon as the
            estimated spectral norm of the residual drops below ``rel_eps`` times the largest singular value of
            the right-hand side core.
        max_iter: Maximum number of extended Krylov iterations.
        max_rank: Hard upper bound on the rank of the truncated solution.
        rel_tol: Relative tolerance of the SVD truncation. Defaults to ``rel_eps``.
        backend: The execution backend.
    """

    def __init__(
        self,
        rel_eps: float = 1e-3,
        max_iter: int = 10,
        max_rank: int = 32,
        backend: Backend | str | None = Backend.CPU,
        rel_tol: float | None = None,
    ) -> None:
        """Initializes the solver parameters.

        Args:
            rel_eps: Relative tolerance of the stopping criterion.
            max_iter: Maximum number of Krylov iterations.
            max_rank: Maximum rank of the truncated solution.
            backend: Backend kind. ``None`` reads the ``MQT_SYLVESTER_BACKEND`` environment variable.
            rel_tol: Relative truncation tolerance. Defaults to ``rel_eps``.

        Raises:
            ValueError: If a tolerance is not positive, or if ``max_iter`` or ``max_rank`` is smaller than one.
        """
        if rel_eps <= 0:
            msg = f"rel_eps must be positive (got {rel_eps})."
            raise ValueError(msg)
        if rel_tol is not None and rel_tol <= 0:
            msg = f"rel_tol must be positive (got {rel_tol})."
            raise ValueError(msg)
        if max_iter < 1:
            msg = f"max_iter must be at least 1 (got {max_iter})."
            raise ValueError(msg)
        if max_rank < 1:
            msg = f"max_rank must be at least 1 (got {max_rank})."
            raise ValueError(msg)

        self.rel_eps = float(rel_eps)
        self.max_iter = int(max_iter)
        self.max_rank = int(max_rank)
        self.rel_tol = self.rel_eps if rel_tol is None else float(rel_tol)
        self.backend = Backend.resolve(backend)

    def __repr__(self) -> str:
        """Return a readable summary of the parameters."""
        return (
            f"SolverParams(rel_eps={self.rel_eps}, max_iter={self.max_iter}, max_rank={self.max_rank}, "
            f"rel_tol={self.rel_tol}, backend={self.backend.value!r})"
        )
