"""Validator functions for common arguments."""

import numpy as np
from arviz_base import rcParams

DEFAULT_GOOD_K = 0.7


def validate_dims(dims):
    """Validate `dims` argument.

    Uses the default in rcParams and ensures the returned object is a list.

    Parameters
    ----------
    dims : str, sequence of hashable, or None

    Returns
    -------
    list
    """
    if dims is None:
        dims = rcParams["data.sample_dims"]
    if isinstance(dims, str):
        dims = [dims]
    return list(dims)


def validate_dims_chain_draw_axis(dims):
    """Validate `dims` argument for functions that use chain_axis and draw_axis.

    In such cases, dims can have length 1 or 2 depending on there being a chain dimension.

    Returns
    -------
    list
        List of dimensions
    int or None
        Positional index for chain dimension
    int
        Positional index for draw dimension
    """
    dims = validate_dims(dims)
    draw_axis = -1
    if len(dims) == 1:
        chain_axis = None
    elif len(dims) == 2:
        chain_axis = -2
    else:
        raise ValueError("dims can only have 1 or 2 elements")
    return dims, chain_axis, draw_axis


def validate_max_workers(max_workers):
    """Validate `max_workers` argument.

    Returns
    -------
    int or None
    """
    if max_workers is None:
        return None
    if int(max_workers) != max_workers or max_workers < 1:
        raise ValueError(f"max_workers must be a positive integer but got {max_workers}")
    return int(max_workers)


def validate_k_threshold(k_threshold, good_k):
    """Validate `k_threshold` argument, defaulting to the `good_k` of the LOO results.

    Any number is valid, ``-inf`` selects all observations.
    """
    if k_threshold is None:
        return good_k
    if isinstance(k_threshold, bool) or not isinstance(k_threshold, int | float | np.number):
        raise TypeError(f"k_threshold must be a number but got {type(k_threshold).__name__}")
    if np.isnan(k_threshold):
        raise ValueError("k_threshold can't be NaN")
    return float(k_threshold)


def validate_good_k(good_k, n_samples):
    """Validate `good_k` argument.

    ``None`` gives the usual 0.7 threshold, ``"sample_size"`` the sample size
    dependent :math:`\\min(1 - 1/\\log_{10}(S), 0.7)`.

    Returns
    -------
    float
    """
    if good_k is None:
        return DEFAULT_GOOD_K
    if isinstance(good_k, str):
        if good_k != "sample_size":
            raise ValueError(f"good_k must be a number or 'sample_size' but got '{good_k}'")
        # with 10 draws or less every tail is too short to be fitted
        if n_samples <= 10:
            return DEFAULT_GOOD_K
        return min(1 - 1 / np.log10(n_samples), DEFAULT_GOOD_K)
    if isinstance(good_k, bool) or not isinstance(good_k, int | float | np.number):
        raise TypeError(f"good_k must be a number but got {type(good_k).__name__}")
    if not 0 < good_k <= 1:
        raise ValueError(f"good_k must be in the (0, 1] interval but got {good_k}")
    return float(good_k)
