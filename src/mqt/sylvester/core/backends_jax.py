# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""JAX accelerator backends.

Arrays are placed on the first device reported by JAX, i.e. a GPU whenever one is visible and the CPU device
otherwise. JAX arrays are immutable, so buffer writes return updated arrays instead of mutating in place.
Sparse operators are stored as BCOO matrices; their LU factorization goes through a dense copy since no sparse
direct solver is available on the device.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import jax.scipy.linalg
import numpy as np
import scipy.sparse
import scipy.sparse.linalg
from jax.experimental import sparse as jsparse

from .backends import LinearAlgebraBackend, QRFactors, SingularOperatorError

jax.config.update("jax_enable_x64", True)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray


class JaxBackend(LinearAlgebraBackend):
    """Accelerator backend based on ``jax.numpy``.

    The thin QR factorization of ``jax.numpy`` already returns an explicit orthogonal factor, so materializing
    it only pins the result to the backend device.
    """

    name = "accelerator"

    def __init__(self, device: jax.Device | None = None) -> None:
        """Initializes the backend.

        Args:
            device: Target device. Defaults to the first device of the default JAX platform.
        """
        self.device = device if device is not None else jax.devices()[0]

    def asarray(self, x: Any) -> jax.Array:
        return jax.device_put(jnp.asarray(x, dtype=jnp.float64), self.device)

    def to_device_operator(self, a: Any) -> jax.Array | jsparse.BCOO:
        if isinstance(a, scipy.sparse.linalg.LinearOperator):
            msg = "Matrix-free operators cannot be factorized; pass a dense array or a sparse matrix."
            raise NotImplementedError(msg)
        if scipy.sparse.issparse(a):
            operator = jsparse.BCOO.from_scipy_sparse(scipy.sparse.coo_matrix(a, dtype=np.float64))
            return jax.device_put(operator, self.device)
        if isinstance(a, jsparse.BCOO):
            return jax.device_put(a, self.device)
        return self.asarray(a)

    def to_host(self, x: Any) -> NDArray[np.float64]:
        return np.asarray(jax.device_get(x), dtype=np.float64)

    def to_scalar(self, x: Any) -> float:
        return float(jax.block_until_ready(x))

    def synchronize(self, *arrays: Any) -> None:
        jax.block_until_ready(arrays)

    def zeros(self, shape: tuple[int, int]) -> jax.Array:
        return jax.device_put(jnp.zeros(shape, dtype=jnp.float64), self.device)

    def copy(self, x: jax.Array) -> jax.Array:
        return jnp.array(x, copy=True)

    def write_columns(self, buffer: jax.Array, block: jax.Array, start: int = 0) -> jax.Array:
        return buffer.at[:, start : start + block.shape[1]].set(block)

    def write_block(self, buffer: jax.Array, block: jax.Array) -> jax.Array:
        return buffer.at[: block.shape[0], : block.shape[1]].set(block)

    def hstack(self, blocks: Sequence[jax.Array]) -> jax.Array:
        return jnp.hstack(blocks)

    def block(self, blocks: list[list[jax.Array]]) -> jax.Array:
        return jnp.block(blocks)

    def diag(self, values: jax.Array) -> jax.Array:
        return jnp.diag(jnp.asarray(values, dtype=jnp.float64))

    def apply_operator(self, a: jax.Array | jsparse.BCOO, x: jax.Array) -> jax.Array:
        return a @ x

    def apply_operator_into(self, buffer: jax.Array, a: jax.Array | jsparse.BCOO, x: jax.Array) -> jax.Array:
        return buffer.at[:, : x.shape[1]].set(a @ x)

    def factorize(self, a: jax.Array | jsparse.BCOO) -> tuple[jax.Array, jax.Array]:
        if a.shape[0] != a.shape[1]:
            msg = f"Only square operators can be factorized (got shape {a.shape})."
            raise ValueError(msg)
        dense = a.todense() if isinstance(a, jsparse.BCOO) else a
        lu, piv = jax.scipy.linalg.lu_factor(dense)
        # Device reductions must complete before the host decides.
        pivots = np.abs(self.to_host(jnp.diag(lu)))
        if not np.all(np.isfinite(pivots)):
            msg = "Dense LU factorization produced non-finite entries."
            raise SingularOperatorError(msg)
        if np.any(pivots == 0.0):
            index = int(np.flatnonzero(pivots == 0.0)[0])
            msg = f"Operator is singular: U[{index}, {index}] of its LU factorization is exactly zero."
            raise SingularOperatorError(msg)
        return lu, piv

    def solve_into(self, buffer: jax.Array, factorization: tuple[jax.Array, jax.Array], x: jax.Array) -> jax.Array:
        return buffer.at[:, : x.shape[1]].set(jax.scipy.linalg.lu_solve(factorization, x))

    def thin_qr(self, a: jax.Array) -> QRFactors:
        q_mat, r = jnp.linalg.qr(a, mode="reduced")
        return QRFactors(q_mat, r)

    def materialize_q(self, q_factor: Any) -> jax.Array:
        return jax.device_put(jnp.asarray(q_factor, dtype=jnp.float64), self.device)

    def qr_r(self, a: jax.Array) -> jax.Array:
        return jnp.linalg.qr(a, mode="r")

    def svd(self, a: jax.Array) -> tuple[jax.Array, jax.Array, jax.Array]:
        u, s, vh = jnp.linalg.svd(a, full_matrices=False)
        return u, s, vh.T

    def spectral_norm(self, a: jax.Array) -> jax.Array:
        if a.size == 0:
            return jnp.zeros((), dtype=jnp.float64)
        return jnp.linalg.svd(a, compute_uv=False)[0]


class JaxUnifiedMemoryBackend(JaxBackend):
    """Accelerator backend for unified (managed) memory.

    Unified memory is a property of the device allocator, configured for the whole process (e.g. through
    ``XLA_PYTHON_CLIENT_ALLOCATOR``), not of individual arrays. Every routine, including the materialization of
    orthogonal factors, therefore runs on the plain accelerator path.
    """

    name = "accelerator_unified"
