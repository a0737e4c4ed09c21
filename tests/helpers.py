# pylint: disable=redefined-outer-name
"""Test related helper functions."""

import os
import sys
import warnings
from typing import Any

import numpy as np
import pytest


def importorskip(modname: str, reason: str | None = None) -> Any:
    """Import and return the requested module ``modname``.

    Doesn't allow skips when ``PSISLOO_REQUIRE_ALL_DEPS`` env var is defined.
    Borrowed and modified from ``pytest.importorskip``.

    Parameters
    ----------
    modname : str
        the name of the module to import
    reason : str, optional
        this reason is shown as skip message when the module cannot be imported.
    """
    __tracebackhide__ = True  # pylint: disable=unused-variable
    compile(modname, "", "eval")  # to catch syntaxerrors

    with warnings.catch_warnings():
        # Make sure to ignore ImportWarnings that might happen because
        # of existing directories with the same name we're trying to
        # import but without a __init__.py file.
        warnings.simplefilter("ignore")
        try:
            __import__(modname)
        except ImportError as exc:
            if "PSISLOO_REQUIRE_ALL_DEPS" in os.environ:
                raise exc
            if reason is None:
                reason = f"could not import {modname!r}: {exc}"
            pytest.skip(reason, allow_module_level=True)

    mod = sys.modules[modname]
    return mod


def poisson_log_likelihood(y, lam):
    """Pointwise Poisson log likelihood with draws of `lam` over the leading dims."""
    from scipy.stats import poisson

    return poisson.logpmf(y, lam[..., None])


def create_poisson_model(y, seed=10, nchains=4, ndraws=500, prior_shape=1.0, prior_rate=1.0):
    """Create a Poisson model with a Gamma prior on its rate.

    Posterior draws are taken from the conjugate Gamma posterior, so they
    are independent and the relative efficiency is close to one.
    """
    from arviz_base import from_dict

    rng = np.random.default_rng(seed)
    y = np.asarray(y)
    lam = rng.gamma(
        prior_shape + y.sum(), 1 / (prior_rate + y.size), size=(nchains, ndraws)
    )
    return from_dict(
        {
            "posterior": {"lam": lam},
            "log_likelihood": {"y": poisson_log_likelihood(y, lam)},
            "observed_data": {"y": y},
        },
        dims={"y": ["obs_id"]},
        coords={"obs_id": np.arange(y.size)},
    )


def poisson_data(seed=0, n_obs=50, rate=3.0):
    """Observations for a well specified Poisson model."""
    rng = np.random.default_rng(seed)
    return rng.poisson(rate, size=n_obs)


def outlier_poisson_data(seed=0, n_obs=20, rate=3.0, outlier=100):
    """Observations with a single large outlier at position 0."""
    y = poisson_data(seed=seed, n_obs=n_obs, rate=rate)
    y[0] = outlier
    return y


def create_multidimensional_log_lik(seed=10, nchains=4, ndraws=500, ndim1=3, ndim2=4):
    """Create a log likelihood DataArray with two observation dims."""
    import xarray as xr

    rng = np.random.default_rng(seed)
    return xr.DataArray(
        rng.normal(-1, 0.3, size=(nchains, ndraws, ndim1, ndim2)),
        dims=["chain", "draw", "group", "item"],
        coords={"group": ["a", "b", "c"][:ndim1], "item": np.arange(ndim2)},
        name="y",
    )
