# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Low-Rank States.

This module implements the low-rank factorization ``X = U S V^T`` of a two-dimensional field that is
passed between time levels. ``U`` and ``V`` have orthonormal columns and ``S`` is a small core which is
diagonal after truncation. A state is never modified after construction; every solve produces a new one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import scipy.linalg

if TYPE_CHECKING:
    from numpy.typing import NDArray


class LowRankState:
    """Low-rank factorization ``U S V^T`` of an ``Nx x Ny`` field.

    The factors may live in host memory (NumPy) or in accelerator memory (JAX). A state of rank zero is legal
    and represents the zero field.

    Attributes:
    u: The ``Nx x r`` matrix with orthonormal columns.
    s: The ``r x r`` core.
    v: The ``Ny x r`` matrix with orthonormal columns.
    rank: The number of retained directions ``r``.
    """

    def __init__(self, u: Any, s: Any, v: Any) -> None:  # noqa: ANN401
        """Initializes a low-rank state from its factors.

        Args:
            u: Left basis of shape ``(Nx, r)``.
            s: Core of shape ``(r, r)``.
            v: Right basis of shape ``(Ny, r)``.

        Raises:
            ValueError: If the factors are not two-dimensional or their shapes are incompatible.
        """
        if len(u.shape) != 2 or len(s.shape) != 2 or len(v.shape) != 2:
            msg = "The factors U, S and V must be two-dimensional."
            raise ValueError(msg)
        if s.shape[0] != s.shape[1]:
            msg = f"The core S must be square (got shape {s.shape})."
            raise ValueError(msg)
        if u.shape[1] != s.shape[0] or v.shape[1] != s.shape[1]:
            msg = f"Incompatible factor shapes U {u.shape}, S {s.shape}, V {v.shape}."
            raise ValueError(msg)
        self._u = u
        self._s = s
        self._v = v

    @property
    def u(self) -> Any:  # noqa: ANN401
        """The left basis."""
        return self._u

    @property
    def s(self) -> Any:  # noqa: ANN401
        """The core."""
        return self._s

    @property
    def v(self) -> Any:  # noqa: ANN401
        """The right basis."""
        return self._v

    @property
    def rank(self) -> int:
        """The number of retained directions."""
        return int(self._s.shape[0])

    @property
    def shape(self) -> tuple[int, int]:
        """The shape ``(Nx, Ny)`` of the represented field."""
        return int(self._u.shape[0]), int(self._v.shape[0])

    @classmethod
    def zeros(cls, nx: int, ny: int) -> LowRankState:
        """Create the rank-zero state of an ``nx x ny`` field.

        Returns:
            LowRankState: A state with empty factors.
        """
        return cls(np.zeros((nx, 0)), np.zeros((0, 0)), np.zeros((ny, 0)))

    @classmethod
    def from_dense(cls, field: NDArray[np.float64], rel_tol: float = 1e-3, max_rank: int = 32) -> LowRankState:
        """Compress a dense field with a truncated SVD.

        Args:
            field: The dense ``Nx x Ny`` field.
            rel_tol: Singular values not larger than ``rel_tol`` times the largest one are discarded.
            max_rank: Maximum number of retained singular values.

        Returns:
            LowRankState: The truncated factorization in host memory.
        """
        from ..methods.truncation import select_rank  # noqa: PLC0415

        u_mat, s_vec, vh_mat = np.linalg.svd(np.asarray(field, dtype=np.float64), full_matrices=False)
        rank = select_rank(s_vec, rel_tol, max_rank)
        return cls(u_mat[:, :rank], np.diag(s_vec[:rank]), vh_mat[:rank, :].T)

    def to_dense(self) -> NDArray[np.float64]:
        """Reconstruct the dense field ``U S V^T`` in host memory.

        Returns:
            NDArray[np.float64]: The ``Nx x Ny`` field.
        """
        u, s, v = self.to_host().factors()
        return u @ s @ v.T

    def to_host(self) -> LowRankState:
        """Return a copy of this state whose factors are host NumPy arrays."""
        return LowRankState(
            np.asarray(self._u, dtype=np.float64),
            np.asarray(self._s, dtype=np.float64),
            np.asarray(self._v, dtype=np.float64),
        )

    def factors(self) -> tuple[Any, Any, Any]:
        """Return the tuple ``(U, S, V)``."""
        return self._u, self._s, self._v

    def scaled(self, factor: float) -> LowRankState:
        """Return the state representing ``factor * U S V^T``. The bases are shared, not copied."""
        return LowRankState(self._u, factor * self._s, self._v)

    def singular_values(self) -> NDArray[np.float64]:
        """Singular values of the represented field in descending order."""
        if self.rank == 0:
            return np.zeros(0)
        return scipy.linalg.svdvals(np.asarray(self._s, dtype=np.float64))

    def check_orthonormality(self) -> tuple[float, float]:
        """Measure the deviation of the bases from orthonormality.

        Returns:
            tuple[float, float]: The spectral norms ``||U^T U - I||`` and ``||V^T V - I||``.
        """
        if self.rank == 0:
            return 0.0, 0.0
        u, _, v = self.to_host().factors()
        identity = np.eye(self.rank)
        return float(np.linalg.norm(u.T @ u - identity, 2)), float(np.linalg.norm(v.T @ v - identity, 2))

    def __repr__(self) -> str:
        """Return a short description of the state."""
        return f"LowRankState(shape={self.shape}, rank={self.rank})"
