# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Benchmark harness.

Times repeated calls of the extended Krylov solver and summarizes the samples. All settings (number of
samples, total time budget, BLAS thread limit) come from an explicit `BenchmarkConfig`; nothing is stored in
module-level state. BLAS thread pools are inspected and capped with ``threadpoolctl``.
"""

from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from threadpoolctl import threadpool_info, threadpool_limits
from tqdm import tqdm

from .solver import solve

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .core.data_structures.low_rank_state import LowRankState
    from .core.data_structures.solver_parameters import SolverParams
    from .solver import SolverResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenchmarkConfig:
    """Settings of a benchmark run.

    Attributes:
        samples: Maximum number of timed calls.
        seconds: Time budget in seconds. No new sample is started once it is exhausted; at least one sample is
            always taken.
        warmup: Number of untimed calls before sampling (compilation, caches).
        blas_threads: Thread limit for BLAS/OpenMP pools during the run, or None to leave them untouched.
        show_progress: Display a progress bar.
    """

    samples: int = 10
    seconds: float = 1000.0
    warmup: int = 1
    blas_threads: int | None = None
    show_progress: bool = False

    def __post_init__(self) -> None:
        """Validate the settings.

        Raises:
            ValueError: If a setting is out of range.
        """
        if self.samples < 1:
            msg = f"samples must be at least 1 (got {self.samples})."
            raise ValueError(msg)
        if self.seconds <= 0:
            msg = f"seconds must be positive (got {self.seconds})."
            raise ValueError(msg)
        if self.warmup < 0:
            msg = f"warmup must be non-negative (got {self.warmup})."
            raise ValueError(msg)
        if self.blas_threads is not None and self.blas_threads < 1:
            msg = f"blas_threads must be at least 1 (got {self.blas_threads})."
            raise ValueError(msg)


@dataclass(frozen=True)
class TimingStatistics:
    """Summary statistics of wall-clock samples in seconds."""

    minimum: float
    maximum: float
    median: float
    mean: float
    std: float
    samples: int

    @classmethod
    def from_samples(cls, times: Sequence[float]) -> TimingStatistics:
        """Summarize a sequence of samples.

        Raises:
            ValueError: If no samples are given.
        """
        data = np.asarray(times, dtype=np.float64)
        if data.size == 0:
            msg = "At least one timing sample is required."
            raise ValueError(msg)
        # Sample standard deviation; zero for a single sample.
        std = float(np.std(data, ddof=1)) if data.size > 1 else 0.0
        return cls(
            minimum=float(np.min(data)),
            maximum=float(np.max(data)),
            median=float(np.median(data)),
            mean=float(np.mean(data)),
            std=std,
            samples=int(data.size),
        )

    def format(self) -> str:
        """Render the statistics as a multi-line report."""
        return "\n".join([
            f"Minimum (s): {self.minimum:.8e}",
            f"Maximum (s): {self.maximum:.8e}",
            f"Median (s): {self.median:.8e}",
            f"Mean (s): {self.mean:.8e}",
            f"Standard deviation (s): {self.std:.8e}",
        ])


def blas_info() -> list[dict[str, Any]]:
    """Describe the thread pools of the loaded BLAS/OpenMP libraries."""
    return threadpool_info()


def _thread_limit(blas_threads: int | None) -> contextlib.AbstractContextManager[Any]:
    if blas_threads is None:
        return contextlib.nullcontext()
    return threadpool_limits(limits=blas_threads)


def benchmark(fn: Callable[[], Any], config: BenchmarkConfig | None = None) -> TimingStatistics:
    """Time repeated calls of ``fn``.

    Args:
        fn: The callable to time. It must block until its work is complete.
        config: Benchmark settings.

    Returns:
        TimingStatistics: Statistics of the timed calls.
    """
    if config is None:
        config = BenchmarkConfig()
    times: list[float] = []
    with _thread_limit(config.blas_threads):
        for _ in range(config.warmup):
            fn()
        start = time.perf_counter()
        for _ in tqdm(range(config.samples), desc="Benchmarking", ncols=80, disable=not config.show_progress):
            tic = time.perf_counter()
            fn()
            times.append(time.perf_counter() - tic)
            if time.perf_counter() - start >= config.seconds:
                break
    return TimingStatistics.from_samples(times)


def benchmark_solver(
    state_old: LowRankState,
    a1: Any,  # noqa: ANN401
    a2: Any,  # noqa: ANN401
    params: SolverParams | None = None,
    config: BenchmarkConfig | None = None,
) -> tuple[TimingStatistics, SolverResult]:
    """Time complete solves, including the factorization of the operators.

    Args:
        state_old: The right-hand side.
        a1: Left operator.
        a2: Right operator.
        params: Solver parameters.
        config: Benchmark settings.

    Returns:
        tuple: The timing statistics and the result of the last solve.
    """
    if config is None:
        config = BenchmarkConfig()
    for pool in blas_info():
        logger.info(
            "BLAS pool %s (%s): %s threads", pool.get("internal_api"), pool.get("prefix"), pool.get("num_threads")
        )

    results: list[SolverResult] = []

    def run() -> None:
        results.append(solve(state_old, a1, a2, params))

    stats = benchmark(run, config)
    logger.info("Benchmark finished with %d samples, median %.3e s", stats.samples, stats.median)
    return stats, results[-1]
