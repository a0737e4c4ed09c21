# pylint: disable=wildcard-import
"""Pareto smoothed importance sampling leave-one-out cross-validation."""

from psisloo.utils import *
from psisloo.accessors import *
from psisloo.errors import *
from psisloo.loo import (
    loo,
    loo_i,
    reloo,
    SamplingWrapper,
    compare,
    elpd_diff,
    pareto_k_flags,
    pareto_k_table,
)

__version__ = "0.1.0"
