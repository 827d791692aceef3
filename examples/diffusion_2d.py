# Copyright (c) 2025 - 2026 Chair for Design Automation, TUM
# All rights reserved.
#
# SPDX-License-Identifier: MIT
#
# Licensed under the MIT License

"""Low-rank time integration of two-dimensional diffusion with a timing of a single implicit step."""

import logging

from mqt.sylvester import SolverParams
from mqt.sylvester.benchmark import BenchmarkConfig, benchmark_solver
from mqt.sylvester.diffusion import DiffusionProblem, evolve

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    # 1. Grid, time step and diffusion coefficients
    problem = DiffusionProblem(nx=101, ny=101, dt=1e-2, d1=0.5, d2=0.5)
    # 2. Compress the initial condition
    state = problem.initial_state(rel_tol=1e-3, max_rank=32)
    # 3. Solver settings; use backend="accelerator" to run on a JAX device
    params = SolverParams(rel_eps=1e-3, max_iter=10, max_rank=32, backend="cpu")

    # 4. Time integration
    final, results = evolve(problem, state, num_steps=20, params=params, show_progress=True)
    print(f"Final rank: {final.rank}")
    print(f"Iterations per step: {[result.iterations for result in results]}")

    # 5. Timing of a single implicit step
    a1, a2 = problem.operators()
    stats, _ = benchmark_solver(state.scaled(-1.0), a1, a2, params, BenchmarkConfig(samples=10, seconds=60.0))
    print(stats.format())
