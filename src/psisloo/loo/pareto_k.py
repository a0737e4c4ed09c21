"""Pareto k diagnostic categories."""

import numpy as np
import pandas as pd
import xarray as xr

from psisloo.utils import ELPDData, ok_k_threshold
from psisloo.validate import DEFAULT_GOOD_K

__all__ = ["pareto_k_flags", "pareto_k_table", "PARETO_K_CATEGORIES"]

PARETO_K_CATEGORIES = ["good", "ok", "bad", "very bad", "undefined"]


def pareto_k_flags(pareto_k, good_k=None):
    """Classify Pareto k values in reliability categories.

    Parameters
    ----------
    pareto_k : DataArray, array-like or ELPDData
        Pareto shape values. ``ELPDData`` inputs must be pointwise and provide
        their own ``good_k``.
    good_k : float, optional
        Upper bound of the "ok" category. Defaults to ``ELPDData.good_k`` or 0.7.

    Returns
    -------
    DataArray or ndarray
        Category of each value, same shape and type as the Pareto k input:

        - **good**: ``k <= min(0.5, good_k)``
        - **ok**: ``k <= good_k``
        - **bad**: ``k <= 1``
        - **very bad**: ``k > 1``, including infinite values
        - **undefined**: missing k values
    """
    if isinstance(pareto_k, ELPDData):
        if pareto_k.pareto_k is None:
            raise ValueError("Pareto k values not available. Recalculate with pointwise=True.")
        good_k = pareto_k.good_k if good_k is None else good_k
        pareto_k = pareto_k.pareto_k
    good_k = DEFAULT_GOOD_K if good_k is None else good_k

    values = np.asarray(pareto_k, dtype=float)
    flags = np.select(
        [np.isnan(values), values <= ok_k_threshold(good_k), values <= good_k, values <= 1],
        ["undefined", "good", "ok", "bad"],
        default="very bad",
    ).astype(object)

    if isinstance(pareto_k, xr.DataArray):
        return pareto_k.copy(data=flags).rename("pareto_k_flags")
    return flags


def pareto_k_table(elpd_data):
    """Count the observations in each Pareto k category.

    Parameters
    ----------
    elpd_data : ELPDData
        Pointwise PSIS-LOO-CV results.

    Returns
    -------
    DataFrame
        Indexed by category, with the number of observations (``count``) and their
        percentage over all observations (``pct``) in each category.
    """
    flags = np.asarray(pareto_k_flags(elpd_data)).ravel()
    counts = pd.Series(flags).value_counts().reindex(PARETO_K_CATEGORIES, fill_value=0)
    table = pd.DataFrame({"count": counts.astype(int)})
    table["pct"] = table["count"] / max(flags.size, 1) * 100
    table.index.name = "pareto_k"
    return table
