# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""MQT Sylvester - low-rank extended Krylov solvers for Sylvester equations.

The solver approximates the solution of ``A1 X + X A2^T + U S V^T = 0`` for a low-rank right-hand side and
returns the solution as a truncated low-rank factorization. It runs on NumPy/SciPy or on JAX devices.
"""

from __future__ import annotations

from .core.backends import Backend, SingularOperatorError, get_backend
from .core.data_structures.low_rank_state import LowRankState
from .core.data_structures.solver_parameters import SolverParams
from .core.data_structures.workspace import ExtendedKrylovWorkspace
from .solver import SolverResult, extended_krylov_step, solve

__all__ = [
    "Backend",
    "ExtendedKrylovWorkspace",
    "LowRankState",
    "SingularOperatorError",
    "SolverParams",
    "SolverResult",
    "extended_krylov_step",
    "get_backend",
    "solve",
]
