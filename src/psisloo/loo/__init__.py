"""Pareto-smoothed importance sampling LOO (PSIS-LOO-CV), exact refits and model comparison."""

from psisloo.loo.loo import loo, loo_i
from psisloo.loo.reloo import reloo
from psisloo.loo.wrapper import SamplingWrapper
from psisloo.loo.compare import compare, elpd_diff
from psisloo.loo.pareto_k import pareto_k_flags, pareto_k_table

__all__ = [
    "loo",
    "loo_i",
    "reloo",
    "SamplingWrapper",
    "compare",
    "elpd_diff",
    "pareto_k_flags",
    "pareto_k_table",
]
