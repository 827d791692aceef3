# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Tests for the SVD truncation of reduced solutions."""

from __future__ import annotations

import numpy as np
import pytest

from mqt.sylvester.core.backends import CPUBackend
from mqt.sylvester.core.methods.truncation import select_rank, truncate_factors


def _orthonormal(rows: int, cols: int, seed: int) -> np.ndarray:
    return np.linalg.qr(np.random.default_rng(seed).standard_normal((rows, cols)))[0]


def _core(singular_values: list[float], seed: int = 0) -> np.ndarray:
    n = len(singular_values)
    return _orthonormal(n, n, seed) @ np.diag(singular_values) @ _orthonormal(n, n, seed + 1).T


def test_select_rank() -> None:
    """Singular values strictly above the relative threshold are kept."""
    s = np.array([10.0, 1.0, 0.01, 1e-5])

    assert select_rank(s, 1e-3, 10) == 2
    assert select_rank(s, 1e-7, 10) == 4
    assert select_rank(s, 1e-7, 3) == 3
    assert select_rank(s, 1e-3, 1) == 1


def test_select_rank_degenerate() -> None:
    """No singular values or only zeros give rank zero."""
    assert select_rank(np.array([]), 1e-3, 5) == 0
    assert select_rank(np.zeros(3), 1e-3, 5) == 0


def test_select_rank_unsorted() -> None:
    """Ascending singular values violate the ordering postcondition."""
    with pytest.raises(ValueError, match="descending"):
        select_rank(np.array([1.0, 2.0]), 1e-3, 5)


def test_truncate_factors() -> None:
    """Small singular values are dropped and the bases stay orthonormal."""
    u_basis = _orthonormal(20, 4, seed=10)
    v_basis = _orthonormal(15, 4, seed=11)
    core = _core([5.0, 2.0, 1e-6, 0.0])
    backend = CPUBackend()

    state = truncate_factors(u_basis, core, v_basis, 1e-3, 10, backend)

    assert state.rank == 2
    np.testing.assert_allclose(np.diag(state.s), [5.0, 2.0], rtol=1e-12)
    np.testing.assert_allclose(state.s, np.diag(np.diag(state.s)))
    np.testing.assert_allclose(state.to_dense(), u_basis @ core @ v_basis.T, atol=1e-5)
    u_err, v_err = state.check_orthonormality()
    assert u_err < 1e-12
    assert v_err < 1e-12


def test_truncate_factors_max_rank() -> None:
    """The rank ceiling applies regardless of the tolerance."""
    state = truncate_factors(
        _orthonormal(20, 4, seed=12), _core([4.0, 3.0, 2.0, 1.0]), _orthonormal(15, 4, seed=13), 1e-8, 2, CPUBackend()
    )
    assert state.rank == 2
    np.testing.assert_allclose(np.diag(state.s), [4.0, 3.0], rtol=1e-12)


def test_truncate_factors_idempotent() -> None:
    """Truncating an already truncated state with a smaller tolerance changes nothing."""
    backend = CPUBackend()
    first = truncate_factors(
        _orthonormal(20, 4, seed=14), _core([5.0, 2.0, 1e-6, 0.0]), _orthonormal(15, 4, seed=15), 1e-3, 10, backend
    )
    second = truncate_factors(first.u, first.s, first.v, 1e-6, 10, backend)

    assert second.rank == first.rank
    np.testing.assert_allclose(second.s, first.s, rtol=1e-12)
    np.testing.assert_allclose(second.to_dense(), first.to_dense(), atol=1e-12)
    np.testing.assert_allclose(np.abs(first.u.T @ second.u), np.eye(first.rank), atol=1e-12)


def test_truncate_factors_zero_core() -> None:
    """A vanishing core yields a rank-zero state."""
    u_basis = _orthonormal(10, 3, seed=16)
    v_basis = _orthonormal(8, 3, seed=17)
    state = truncate_factors(u_basis, np.zeros((3, 3)), v_basis, 1e-3, 5, CPUBackend())

    assert state.rank == 0
    assert state.shape == (10, 8)
    np.testing.assert_array_equal(state.to_dense(), np.zeros((10, 8)))


def test_truncate_factors_empty_core() -> None:
    """An empty core yields a rank-zero state of the right shape."""
    state = truncate_factors(np.zeros((10, 0)), np.zeros((0, 0)), np.zeros((8, 0)), 1e-3, 5, CPUBackend())

    assert state.rank == 0
    assert state.shape == (10, 8)
