# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Linear Algebra Backends.

This module defines the interface through which the extended Krylov solver touches memory. Every dense or
sparse matrix operation that depends on where the data lives (host memory or accelerator memory) is routed
through a `LinearAlgebraBackend`:
  - applying an operator and solving with its LU factorization,
  - thin QR factorizations and the materialization of the orthogonal factor,
  - singular value decompositions and spectral norms,
  - buffer writes, which are in place on the host and functional on the accelerator.

The host implementation (`CPUBackend`) relies on NumPy/SciPy and accepts dense arrays as well as SciPy sparse
matrices. Accelerator implementations live in `backends_jax` and are imported lazily, so JAX is only loaded when
an accelerator backend is requested.
"""

from __future__ import annotations

import importlib
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
import scipy.linalg
import scipy.sparse
import scipy.sparse.linalg
from scipy.linalg.lapack import get_lapack_funcs
from typing_extensions import assert_never

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

BACKEND_ENV_VAR = "MQT_SYLVESTER_BACKEND"


class SingularOperatorError(ValueError):
    """Raised when a coefficient operator cannot be LU factorized."""


class QRFactors(NamedTuple):
    """Result of a thin QR factorization.

    Attributes:
        q_factor: The orthogonal factor, possibly in a compact backend-specific representation.
            Use `LinearAlgebraBackend.materialize_q` to obtain a dense matrix.
        r: The upper triangular factor.
    """

    q_factor: Any
    r: Any


class LinearAlgebraBackend(ABC):
    """Interface of the dense/sparse routines used by the extended Krylov solver.

    Arrays handled by a backend are always two-dimensional and of type float64. Methods whose name ends in
    ``_into`` or that start with ``write_`` return the (possibly new) buffer. Callers must always rebind the
    buffer to the return value, since accelerator arrays are immutable.
    """

    name: str = "abstract"

    # ------------------------------------------------------------------
    # residency
    # ------------------------------------------------------------------
    @abstractmethod
    def asarray(self, x: Any) -> Any:
        """Move a dense array to the memory of this backend."""

    @abstractmethod
    def to_device_operator(self, a: Any) -> Any:
        """Move a dense or sparse coefficient operator to the memory of this backend."""

    @abstractmethod
    def to_host(self, x: Any) -> NDArray[np.float64]:
        """Copy an array of this backend into a host NumPy array."""

    @abstractmethod
    def to_scalar(self, x: Any) -> float:
        """Convert a zero-dimensional array to a host float.

        Forces completion of all outstanding device work that produced ``x`` before the value is read.
        """

    def synchronize(self, *arrays: Any) -> None:
        """Block until the given arrays are computed. No-op for synchronous backends."""

    # ------------------------------------------------------------------
    # allocation and buffer writes
    # ------------------------------------------------------------------
    @abstractmethod
    def zeros(self, shape: tuple[int, int]) -> Any:
        """Allocate a zero-filled float64 matrix."""

    @abstractmethod
    def copy(self, x: Any) -> Any:
        """Return an independent copy of ``x``."""

    @abstractmethod
    def write_columns(self, buffer: Any, block: Any, start: int = 0) -> Any:
        """Store ``block`` in the columns ``start:start + block.shape[1]`` of ``buffer``.

        Args:
            buffer: The destination matrix.
            block: The matrix to be stored. Must have as many rows as ``buffer``.
            start: The first destination column.

        Returns:
            The updated buffer.
        """

    @abstractmethod
    def write_block(self, buffer: Any, block: Any) -> Any:
        """Store ``block`` in the leading ``block.shape`` sub-matrix of ``buffer`` and return the buffer."""

    @abstractmethod
    def hstack(self, blocks: Sequence[Any]) -> Any:
        """Concatenate matrices column-wise."""

    @abstractmethod
    def block(self, blocks: list[list[Any]]) -> Any:
        """Assemble a matrix from a nested list of blocks."""

    @abstractmethod
    def diag(self, values: Any) -> Any:
        """Build a square diagonal matrix from a vector."""

    # ------------------------------------------------------------------
    # operators
    # ------------------------------------------------------------------
    @abstractmethod
    def apply_operator(self, a: Any, x: Any) -> Any:
        """Return the product ``a @ x`` of a (dense or sparse) operator with a dense matrix."""

    @abstractmethod
    def apply_operator_into(self, buffer: Any, a: Any, x: Any) -> Any:
        """Store ``a @ x`` in the leading columns of ``buffer`` and return the buffer."""

    @abstractmethod
    def factorize(self, a: Any) -> Any:
        """Compute the LU factorization of a square operator.

        Raises:
            SingularOperatorError: If the operator is singular or cannot be factorized.
        """

    @abstractmethod
    def solve_into(self, buffer: Any, factorization: Any, x: Any) -> Any:
        """Store ``a^{-1} x`` in the leading columns of ``buffer`` and return the buffer."""

    # ------------------------------------------------------------------
    # decompositions
    # ------------------------------------------------------------------
    @abstractmethod
    def thin_qr(self, a: Any) -> QRFactors:
        """Thin QR factorization of a tall matrix."""

    @abstractmethod
    def materialize_q(self, q_factor: Any) -> Any:
        """Convert the orthogonal factor returned by `thin_qr` into a dense matrix of this backend."""

    @abstractmethod
    def qr_r(self, a: Any) -> Any:
        """Return only the triangular factor of the thin QR factorization of ``a``."""

    @abstractmethod
    def svd(self, a: Any) -> tuple[Any, Any, Any]:
        """Thin singular value decomposition ``a = u @ diag(s) @ v.T``.

        Returns:
            u: Left singular vectors as columns.
            s: Singular values in descending order.
            v: Right singular vectors as columns (not transposed).
        """

    @abstractmethod
    def spectral_norm(self, a: Any) -> Any:
        """Largest singular value of ``a`` as a zero-dimensional array. Zero for empty matrices."""


class CPUBackend(LinearAlgebraBackend):
    """Host backend based on NumPy and SciPy.

    Operators may be dense arrays or SciPy sparse matrices. Dense operators are factorized with
    `scipy.linalg.lu_factor`, sparse ones with SuperLU. Thin QR factorizations keep the orthogonal factor in
    LAPACK's compact Householder form until it is materialized.
    """

    name = "cpu"

    def asarray(self, x: Any) -> NDArray[np.float64]:
        return np.asarray(x, dtype=np.float64)

    def to_device_operator(self, a: Any) -> NDArray[np.float64] | scipy.sparse.csr_matrix:
        if isinstance(a, scipy.sparse.linalg.LinearOperator):
            msg = "Matrix-free operators cannot be factorized; pass a dense array or a sparse matrix."
            raise NotImplementedError(msg)
        if scipy.sparse.issparse(a):
            return scipy.sparse.csr_matrix(a, dtype=np.float64)
        return np.asarray(a, dtype=np.float64)

    def to_host(self, x: Any) -> NDArray[np.float64]:
        return np.asarray(x, dtype=np.float64)

    def to_scalar(self, x: Any) -> float:
        return float(x)

    def zeros(self, shape: tuple[int, int]) -> NDArray[np.float64]:
        return np.zeros(shape, dtype=np.float64)

    def copy(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.array(x, dtype=np.float64, copy=True)

    def write_columns(
        self, buffer: NDArray[np.float64], block: NDArray[np.float64], start: int = 0
    ) -> NDArray[np.float64]:
        buffer[:, start : start + block.shape[1]] = block
        return buffer

    def write_block(self, buffer: NDArray[np.float64], block: NDArray[np.float64]) -> NDArray[np.float64]:
        buffer[: block.shape[0], : block.shape[1]] = block
        return buffer

    def hstack(self, blocks: Sequence[NDArray[np.float64]]) -> NDArray[np.float64]:
        return np.hstack(blocks)

    def block(self, blocks: list[list[NDArray[np.float64]]]) -> NDArray[np.float64]:
        return np.block(blocks)

    def diag(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.diag(np.asarray(values, dtype=np.float64))

    def apply_operator(self, a: Any, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.asarray(a @ x)

    def apply_operator_into(
        self, buffer: NDArray[np.float64], a: Any, x: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        out = buffer[:, : x.shape[1]]
        if scipy.sparse.issparse(a):
            out[...] = a @ x
        else:
            np.matmul(a, x, out=out)
        return buffer

    def factorize(self, a: Any) -> Any:
        if a.shape[0] != a.shape[1]:
            msg = f"Only square operators can be factorized (got shape {a.shape})."
            raise ValueError(msg)
        if scipy.sparse.issparse(a):
            try:
                return scipy.sparse.linalg.splu(scipy.sparse.csc_matrix(a))
            except RuntimeError as err:
                msg = f"Sparse LU factorization failed: {err}"
                raise SingularOperatorError(msg) from err
        try:
            lu, piv = scipy.linalg.lu_factor(a, check_finite=True)
        except ValueError as err:
            msg = f"Dense LU factorization failed: {err}"
            raise SingularOperatorError(msg) from err
        pivots = np.abs(np.diag(lu))
        if np.any(pivots == 0.0):
            index = int(np.flatnonzero(pivots == 0.0)[0])
            msg = f"Operator is singular: U[{index}, {index}] of its LU factorization is exactly zero."
            raise SingularOperatorError(msg)
        return lu, piv

    def solve_into(
        self, buffer: NDArray[np.float64], factorization: Any, x: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        if isinstance(factorization, scipy.sparse.linalg.SuperLU):
            buffer[:, : x.shape[1]] = factorization.solve(np.asarray(x))
        else:
            buffer[:, : x.shape[1]] = scipy.linalg.lu_solve(factorization, x)
        return buffer

    def thin_qr(self, a: NDArray[np.float64]) -> QRFactors:
        """Thin QR factorization returning the Householder reflectors as orthogonal factor.

        Returns:
            QRFactors: ``q_factor`` is the tuple ``(reflectors, tau)`` produced by LAPACK ``geqrf``.
        """
        (reflectors, tau), r = scipy.linalg.qr(a, mode="raw")
        return QRFactors((reflectors, tau), r)

    def materialize_q(self, q_factor: Any) -> NDArray[np.float64]:
        """Expand compact Householder reflectors into an explicit matrix with orthonormal columns.

        Args:
            q_factor: Either the ``(reflectors, tau)`` tuple returned by `thin_qr` or an explicit matrix.

        Returns:
            NDArray[np.float64]: The ``m x min(m, n)`` orthogonal factor.

        Raises:
            RuntimeError: If LAPACK ``orgqr`` reports an error.
        """
        if not isinstance(q_factor, tuple):
            return np.asarray(q_factor, dtype=np.float64)
        reflectors, tau = q_factor
        num_cols = tau.shape[0]
        (orgqr,) = get_lapack_funcs(("orgqr",), (reflectors,))
        q_mat, _, info = orgqr(reflectors[:, :num_cols], tau)
        if info != 0:
            msg = f"LAPACK orgqr failed with info={info}."
            raise RuntimeError(msg)
        return q_mat

    def qr_r(self, a: NDArray[np.float64]) -> NDArray[np.float64]:
        (r,) = scipy.linalg.qr(a, mode="r")
        # mode="r" returns the full (m, n) factor; keep the thin part.
        return r[: min(a.shape), :]

    def svd(self, a: NDArray[np.float64]) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        u, s, vh = np.linalg.svd(a, full_matrices=False)
        return u, s, vh.T

    def spectral_norm(self, a: NDArray[np.float64]) -> np.float64:
        if a.size == 0:
            return np.float64(0.0)
        return np.float64(scipy.linalg.svdvals(a)[0])


class Backend(Enum):
    """Enumeration of the available execution backends.

    CPU: Host memory, NumPy/SciPy with dense or sparse operators.
    ACCELERATOR: Accelerator memory through JAX (falls back to the JAX CPU device without an accelerator).
    ACCELERATOR_UNIFIED: Accelerator with unified memory; delegates to the accelerator path.
    """

    CPU = "cpu"
    ACCELERATOR = "accelerator"
    ACCELERATOR_UNIFIED = "accelerator_unified"

    @classmethod
    def resolve(cls, value: Backend | str | None) -> Backend:
        """Turn a configuration value into a `Backend`.

        Args:
            value: A `Backend`, its string value, or None to read the ``MQT_SYLVESTER_BACKEND`` environment
                variable (defaulting to ``"cpu"``).

        Returns:
            Backend: The resolved backend kind.

        Raises:
            ValueError: If the value does not name a backend.
        """
        if isinstance(value, Backend):
            return value
        if value is None:
            value = os.environ.get(BACKEND_ENV_VAR, cls.CPU.value)
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            msg = f"Unknown backend '{value}'. Valid options are: {valid}."
            raise ValueError(msg) from None

    def create(self) -> LinearAlgebraBackend:
        """Instantiates the backend implementation for this kind.

        Returns:
            LinearAlgebraBackend: A fresh backend instance.
        """
        if self == Backend.CPU:
            return CPUBackend()
        if self == Backend.ACCELERATOR:
            jax_backends = importlib.import_module(".backends_jax", __package__)
            return jax_backends.JaxBackend()
        if self == Backend.ACCELERATOR_UNIFIED:
            jax_backends = importlib.import_module(".backends_jax", __package__)
            return jax_backends.JaxUnifiedMemoryBackend()
        assert_never(self)


def get_backend(kind: Backend | str | None = None) -> LinearAlgebraBackend:
    """Return a backend implementation for a configuration value.

    Args:
        kind: See `Backend.resolve`.

    Returns:
        LinearAlgebraBackend: The backend implementation.
    """
    return Backend.resolve(kind).create()
