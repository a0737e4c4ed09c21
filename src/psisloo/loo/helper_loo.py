"""Helper functions for PSIS-LOO-CV."""

import warnings
from collections import namedtuple
from collections.abc import Mapping

import numpy as np
import xarray as xr
from arviz_base import convert_to_datatree, rcParams
from xarray_einstats.stats import logsumexp

from psisloo.errors import (
    InsufficientTailSampleWarning,
    NonFiniteLogLikelihoodWarning,
    ParetoFitDivergenceWarning,
    PSISWarning,
)
from psisloo.utils import ELPDData, LooState, get_log_likelihood
from psisloo.validate import validate_dims, validate_good_k

__all__ = [
    "_compute_loo_results",
    "_count_diverged",
    "_get_log_likelihood_i",
    "_get_r_eff",
    "_get_weights_and_k_i",
    "_loo_summary",
    "_mcse_elpd_i",
    "_prepare_loo_inputs",
    "_warn_pareto_k",
    "_warn_pointwise_issues",
    "_warn_pointwise_loo",
]

LooInputs = namedtuple(
    "LooInputs",
    ["log_likelihood", "var_name", "sample_dims", "obs_dims", "n_samples", "n_data_points"],
)


def _compute_loo_results(
    log_likelihood,
    sample_dims,
    n_samples,
    n_data_points,
    pointwise=None,
    log_weights=None,
    pareto_k=None,
    reff=1.0,
    max_workers=None,
    good_k=None,
):
    """Compute PSIS-LOO-CV results."""
    obs_dims = [dim for dim in log_likelihood.dims if dim not in sample_dims]

    if log_weights is not None:
        for dim in sample_dims:
            if dim not in log_weights.dims:
                raise ValueError(f"log_weights must have sample dimension '{dim}'")
        for dim in log_likelihood.dims:
            if log_weights.sizes.get(dim) != log_likelihood.sizes[dim]:
                raise ValueError(
                    f"log_weights size for dimension '{dim}' ({log_weights.sizes.get(dim)}) "
                    f"must match log_likelihood size ({log_likelihood.sizes[dim]})"
                )

    if pareto_k is not None:
        if set(pareto_k.dims) != set(obs_dims):
            raise ValueError(
                f"pareto_k dimensions {list(pareto_k.dims)} must match "
                f"observation dimensions {obs_dims}"
            )
        for dim in pareto_k.dims:
            if pareto_k.sizes[dim] != log_likelihood.sizes[dim]:
                raise ValueError(
                    f"pareto_k size for dimension '{dim}' ({pareto_k.sizes[dim]}) "
                    f"must match log_likelihood size ({log_likelihood.sizes[dim]})"
                )

    non_finite = ~np.isfinite(log_likelihood).all(dim=sample_dims)

    if log_weights is None or pareto_k is None:
        log_weights, pareto_k = (-log_likelihood).psis.psislw(
            r_eff=reff, dim=sample_dims, max_workers=max_workers
        )

    _warn_pointwise_issues(pareto_k, non_finite)
    good_k = validate_good_k(good_k, n_samples)
    warn_mg = _warn_pareto_k(pareto_k, good_k)

    elpd_i = logsumexp(log_weights + log_likelihood, dims=sample_dims)
    elpd_i = elpd_i.where(~non_finite).rename("elpd_i")

    lpd_i = logsumexp(log_likelihood, b=1 / n_samples, dims=sample_dims)
    p_loo_i = (lpd_i - elpd_i).rename("p_loo_i")

    mcse_elpd_i = _mcse_elpd_i(log_likelihood, log_weights, elpd_i, pareto_k, reff, sample_dims)

    elpd, elpd_se, p_loo, mcse_elpd = _loo_summary(elpd_i, p_loo_i, mcse_elpd_i)

    pointwise = rcParams["stats.ic_pointwise"] if pointwise is None else pointwise
    if pointwise:
        _warn_pointwise_loo(elpd, elpd_i.values)

    return ELPDData(
        "loo",
        elpd,
        elpd_se,
        p_loo,
        n_samples,
        n_data_points,
        warn_mg,
        good_k,
        elpd_i=elpd_i if pointwise else None,
        pareto_k=pareto_k if pointwise else None,
        p_loo_i=p_loo_i if pointwise else None,
        mcse_elpd=mcse_elpd,
        mcse_elpd_i=mcse_elpd_i if pointwise else None,
        log_weights=log_weights,
        loo_state=_initial_loo_state(pareto_k) if pointwise else None,
        refit_failed=xr.zeros_like(pareto_k, dtype=bool).rename("refit_failed")
        if pointwise
        else None,
        n_diverged=_count_diverged(pareto_k),
    )


def _initial_loo_state(pareto_k):
    return xr.full_like(pareto_k, LooState.APPROXIMATE.value, dtype=object).rename("loo_state")


def _loo_summary(elpd_i, p_loo_i, mcse_elpd_i=None):
    """Aggregate pointwise results.

    Missing pointwise values are never skipped, they make the aggregates missing too.
    """
    elpd_values = np.asarray(elpd_i, dtype=float).ravel()
    n_data_points = elpd_values.size
    elpd = np.sum(elpd_values)
    elpd_se = (n_data_points * np.var(elpd_values)) ** 0.5
    p_loo = np.sum(np.asarray(p_loo_i, dtype=float))
    mcse_elpd = None
    if mcse_elpd_i is not None:
        mcse_elpd = float(np.sqrt(np.sum(np.asarray(mcse_elpd_i, dtype=float) ** 2)))
    return float(elpd), float(elpd_se), float(p_loo), mcse_elpd


def _mcse_elpd_i(log_likelihood, log_weights, elpd_i, pareto_k, reff, sample_dims):
    """Monte Carlo standard error of the pointwise elpd.

    Uses the variance of the self-normalized importance sampling estimate of the
    likelihood and the delta method for the log. Undefined when ``pareto_k >= 1``.
    """
    with np.errstate(over="ignore", invalid="ignore"):
        rel_lik = np.exp(log_likelihood - elpd_i) - 1
        var_rel = (np.exp(2 * log_weights) * rel_lik**2).sum(dim=sample_dims, skipna=False)
        mcse = np.sqrt(var_rel / reff)
    return mcse.where(pareto_k < 1).rename("mcse_elpd_i")


def _as_log_likelihood_dataarray(data, var_name):
    """Get the log likelihood DataArray and its sample dims from any supported input."""
    if isinstance(data, xr.DataArray):
        return data, validate_dims(None)

    if isinstance(data, np.ndarray | list | tuple):
        ary = np.asarray(data, dtype=float)
        if ary.ndim < 2:
            raise ValueError(
                "log likelihood arrays must have at least a draw and an observation axis, "
                f"got shape {ary.shape}"
            )
        if ary.ndim == 2:
            ary = ary[None, ...]
        sample_dims = ["chain", "draw"]
        obs_dims = [f"obs_dim_{i}" for i in range(ary.ndim - 2)]
        return xr.DataArray(ary, dims=[*sample_dims, *obs_dims], name=var_name), sample_dims

    data = convert_to_datatree(data)
    return get_log_likelihood(data, var_name=var_name), validate_dims(None)


def _prepare_loo_inputs(data, var_name):
    """Prepare inputs for PSIS-LOO-CV."""
    log_likelihood, sample_dims = _as_log_likelihood_dataarray(data, var_name)
    if var_name is None and log_likelihood.name is not None:
        var_name = log_likelihood.name

    missing_dims = [dim for dim in sample_dims if dim not in log_likelihood.dims]
    if missing_dims:
        raise ValueError(
            f"log likelihood must have the sample dimensions {sample_dims}, "
            f"missing {missing_dims}"
        )
    obs_dims = [dim for dim in log_likelihood.dims if dim not in sample_dims]
    if not obs_dims:
        raise ValueError("log likelihood must have at least one observation dimension")

    n_samples = int(np.prod([log_likelihood.sizes[dim] for dim in sample_dims]))
    n_data_points = int(np.prod([log_likelihood.sizes[dim] for dim in obs_dims]))
    if n_data_points == 0 or n_samples == 0:
        raise ValueError(
            f"log likelihood must have draws and observations, got sizes {dict(log_likelihood.sizes)}"
        )
    return LooInputs(
        log_likelihood,
        var_name,
        sample_dims,
        obs_dims,
        n_samples,
        n_data_points,
    )


def _get_r_eff(data, n_samples, sample_dims=None):
    """Relative efficiency of the posterior draws, 1 when there is no posterior to use."""
    if isinstance(data, xr.DataArray | np.ndarray | list | tuple) or not hasattr(
        data, "posterior"
    ):
        return 1.0
    sample_dims = validate_dims(sample_dims)
    posterior = data.posterior
    if isinstance(posterior, xr.DataTree):
        posterior = posterior.to_dataset()
    if "chain" not in posterior.dims or posterior.sizes["chain"] == 1:
        return 1.0
    ess_values = [
        da.psis.ess(sample_dims=sample_dims).values.flatten()
        for da in posterior.data_vars.values()
        if all(dim in da.dims for dim in sample_dims)
    ]
    if not ess_values:
        return 1.0
    # this mean is over all data variables
    r_eff = np.hstack(ess_values).mean() / n_samples
    return float(r_eff) if np.isfinite(r_eff) and r_eff > 0 else 1.0


def _get_log_likelihood_i(log_likelihood, i, obs_dims):
    """Extract the log-likelihood for one observation `i`."""
    if not obs_dims:
        raise ValueError("log_likelihood must have observation dimensions.")

    # flattened integer positional selection
    if isinstance(i, int | np.integer):
        n_obs = int(np.prod([log_likelihood.sizes[dim] for dim in obs_dims]))
        idx = int(i)
        if not 0 <= idx < n_obs:
            raise IndexError(f"Index {idx} is out of bounds for {n_obs} observations")
        positions = np.unravel_index(idx, [log_likelihood.sizes[dim] for dim in obs_dims])
        return log_likelihood.isel(
            {dim: int(pos) for dim, pos in zip(obs_dims, positions)}, drop=False
        )

    # mapping of labels for all obs dims
    if isinstance(i, Mapping):
        if set(i.keys()) != set(obs_dims):
            raise ValueError(f"Provide selections for all observation dims: {tuple(obs_dims)}")

        da = log_likelihood.sel(i, drop=False)

        remaining_obs_dims = [d for d in obs_dims if d in da.dims]
        if any(da.sizes[d] != 1 for d in remaining_obs_dims):
            raise ValueError("Selection must reduce each observation dimension to length 1.")
        return da.squeeze(remaining_obs_dims)

    # single scalar label when there is exactly one obs dim
    if len(obs_dims) == 1:
        obs_dim = obs_dims[0]
        da = log_likelihood.sel({obs_dim: i}, drop=False)
        if obs_dim in da.sizes:
            if da.sizes[obs_dim] != 1:
                raise ValueError("Selection must select exactly one element.")
            da = da.squeeze(obs_dim)
        return da

    raise TypeError(
        "i must be either a flattened integer index, a mapping of {obs_dim: coord_value} "
        "for all observation dims, or a single scalar label when there is exactly one "
        "observation dimension."
    )


def _get_weights_and_k_i(log_weights, pareto_k, i, obs_dims, sample_dims, reff, log_lik_i):
    """Get log weights and Pareto k for a specific observation."""
    if (log_weights is None) != (pareto_k is None):
        raise ValueError(
            "Both log_weights and pareto_k must be provided together or both must be None. "
            "Only one was provided."
        )

    if log_weights is None:
        return (-log_lik_i).psis.psislw(r_eff=reff, dim=sample_dims)

    if any(dim in log_weights.dims for dim in obs_dims):
        log_weights = _get_log_likelihood_i(log_weights, i, obs_dims)
    for dim in sample_dims:
        if dim not in log_weights.dims:
            raise ValueError(f"log_weights must have sample dimension '{dim}'")

    if any(dim in pareto_k.dims for dim in obs_dims):
        pareto_k = _get_log_likelihood_i(pareto_k, i, obs_dims)

    return log_weights, pareto_k


def _count_diverged(pareto_k):
    """Number of observations whose Pareto k is 1 or larger, ``inf`` included."""
    return int(np.sum(np.asarray(pareto_k, dtype=float) >= 1))


def _warn_pareto_k(pareto_k_values, good_k, suppress=False):
    """Check Pareto k values against `good_k` and issue warnings if necessary."""
    warn_mg = False

    if np.any(np.asarray(pareto_k_values) > good_k):
        if not suppress:
            warnings.warn(
                f"Estimated shape parameter of Pareto distribution is greater than {good_k:.2f} "
                "for one or more samples. You should consider using a more robust model, this is "
                "because importance sampling is less likely to work well if the marginal posterior "
                "and LOO posterior are very different. This is more likely to happen with a "
                "non-robust model and highly influential observations.",
                PSISWarning,
                stacklevel=3,
            )
        warn_mg = True
    return warn_mg


def _warn_pointwise_issues(pareto_k, non_finite):
    """Warn about observations whose PSIS estimate could not be computed reliably."""
    n_non_finite = int(np.sum(np.asarray(non_finite)))
    if n_non_finite:
        warnings.warn(
            f"{n_non_finite} observation(s) have non finite log likelihood values. "
            "Their pointwise results are reported as missing.",
            NonFiniteLogLikelihoodWarning,
            stacklevel=3,
        )

    pareto_k_values = np.asarray(pareto_k, dtype=float)
    n_short_tail = int(np.sum(np.isposinf(pareto_k_values)))
    if n_short_tail:
        warnings.warn(
            f"{n_short_tail} observation(s) have fewer than 5 draws in the tail of the "
            "importance ratios. Their Pareto k is undefined and reported as inf.",
            InsufficientTailSampleWarning,
            stacklevel=3,
        )

    n_diverged = int(np.sum(np.isfinite(pareto_k_values) & (pareto_k_values >= 1)))
    if n_diverged:
        warnings.warn(
            f"{n_diverged} observation(s) have Pareto k of 1 or larger. Their Monte Carlo "
            "standard errors are undefined and reported as missing.",
            ParetoFitDivergenceWarning,
            stacklevel=3,
        )


def _warn_pointwise_loo(elpd, elpd_i_values):
    """Check if pointwise LOO values sum to the same as total LOO."""
    if np.size(elpd_i_values) > 1 and np.equal(elpd, elpd_i_values).all():
        warnings.warn(
            "The point-wise LOO is the same with the sum LOO, please double check "
            "the Observed RV in your model to make sure it returns element-wise logp."
        )
