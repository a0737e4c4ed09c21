"""Compute exact Leave-One-Out cross validation refitting for problematic observations."""

import logging
import time
import warnings
from concurrent.futures import ThreadPoolExecutor, wait
from copy import deepcopy

import numpy as np
import xarray as xr
from arviz_base import rcParams
from scipy.special import logsumexp as _logsumexp
from xarray_einstats.stats import logsumexp

from psisloo.errors import RefitError, RefitFailureWarning
from psisloo.loo.helper_loo import (
    _count_diverged,
    _initial_loo_state,
    _loo_summary,
    _prepare_loo_inputs,
)
from psisloo.loo.loo import loo
from psisloo.loo.wrapper import SamplingWrapper
from psisloo.utils import ELPDData, LooState
from psisloo.validate import validate_k_threshold, validate_max_workers

__all__ = ["reloo"]

_log = logging.getLogger(__name__)

REQUIRED_METHODS = ["sel_observations", "sample", "get_inference_data", "log_likelihood__i"]


def reloo(
    wrapper,
    loo_orig=None,
    k_threshold=None,
    pointwise=None,
    max_workers=None,
    timeout=None,
    var_name=None,
):
    r"""Recalculate exact Leave-One-Out cross validation refitting where the approximation fails.

    :func:`psisloo.loo` estimates the values of Leave-One-Out (LOO) cross validation using
    Pareto Smoothed Importance Sampling (PSIS) to approximate its value. PSIS works well when
    the posterior and the posterior_i (excluding observation i from the data used to fit)
    are similar. In some cases, there are highly influential observations for which PSIS
    cannot approximate the LOO-CV, and a warning of a large Pareto shape is sent.

    We can use PSIS for all observations where the Pareto shape is below a threshold
    and refit the model to perform exact cross validation for the handful of observations
    where PSIS cannot be used. Refitted observations change their ``loo_state`` from
    ``"approximate"`` to ``"exact"`` and their exact values replace the approximate ones
    before the aggregates are recomputed.

    Parameters
    ----------
    wrapper : SamplingWrapper or callable
        An instance of a SamplingWrapper subclass implementing the methods needed to
        refit the model, or a callable ``refit(idx)`` returning the log likelihood draws
        of the held-out observation after refitting without it. `idx` is the position of
        the observation when there is a single observation dimension and a dict
        ``{obs_dim: coord_value}`` otherwise.
    loo_orig : ELPDData, optional
        Existing pointwise LOO results. If None, PSIS-LOO-CV is computed first using the
        ``data`` of `wrapper`.
    k_threshold : float, optional
        Pareto shape threshold. Observations with k values above this threshold
        trigger a refit. Defaults to the ``good_k`` of `loo_orig`, 0.7 unless
        :func:`~psisloo.loo` was called with another ``good_k``.
    pointwise : bool, optional
        If True, return pointwise LOO data. Defaults to
        ``rcParams["stats.ic_pointwise"]``.
    max_workers : int, optional
        Maximum number of refits running at the same time. Each running refit keeps
        a fitted model in memory. Defaults to 1.
    timeout : float, optional
        Seconds each refit is allowed to run, counted from the moment it starts in
        a worker. A refit taking longer is reported as failed and its result is
        discarded. Refits waiting for a free worker are not timed. Waits
        indefinitely by default.
    var_name : str, optional
        Log likelihood variable used when `loo_orig` has to be computed.

    Returns
    -------
    ELPDData
        Updated LOO results where high Pareto k observations have been
        replaced with exact LOO-CV values from refitting.

    Notes
    -----
    Refits are not retried. A refit that raises or times out leaves its observation
    ``"approximate"``, flags it in ``refit_failed``, reports its pointwise elpd as
    missing and issues a :class:`~psisloo.errors.RefitFailureWarning`.

    See Also
    --------
    loo : Pareto smoothed importance sampling LOO-CV

    References
    ----------

    .. [1] Vehtari et al. *Practical Bayesian model evaluation using leave-one-out cross-validation
        and WAIC*. Statistics and Computing. 27(5) (2017) https://doi.org/10.1007/s11222-016-9696-4
        arXiv preprint https://arxiv.org/abs/1507.04544.
    """
    refit_fn = _get_refit_function(wrapper)
    pointwise = rcParams["stats.ic_pointwise"] if pointwise is None else pointwise
    max_workers = validate_max_workers(max_workers) or 1
    data = getattr(wrapper, "data", None)
    if var_name is None:
        var_name = getattr(wrapper, "log_lik_var_name", None)

    if loo_orig is None:
        if data is None:
            raise TypeError(
                "loo_orig must be provided when the wrapper doesn't hold the data of the fit."
            )
        loo_orig = loo(data, var_name=var_name, pointwise=True)

    if not isinstance(loo_orig, ELPDData):
        raise TypeError("loo_orig must be an ELPDData object.")

    if loo_orig.pareto_k is None or loo_orig.elpd_i is None:
        raise ValueError(
            "reloo requires pointwise LOO results with Pareto k values. "
            "Please compute the initial LOO with pointwise=True."
        )

    loo_refitted = deepcopy(loo_orig)
    _fill_pointwise_defaults(loo_refitted, data, var_name)
    k_threshold = validate_k_threshold(k_threshold, loo_orig.good_k)

    pareto_k = loo_refitted.pareto_k
    obs_dims = list(pareto_k.dims)
    bad_obs_flat_indices = np.flatnonzero(np.asarray(pareto_k.values, dtype=float) > k_threshold)

    if len(bad_obs_flat_indices) == 0:
        return _drop_pointwise(loo_refitted, pointwise)

    selectors = {
        flat_idx: _refit_selector(pareto_k, flat_idx, obs_dims)
        for flat_idx in bad_obs_flat_indices
    }
    _log.info(
        "Refitting the model for %d observation(s) with Pareto k above %.2f",
        len(selectors),
        k_threshold,
    )
    outcomes = _run_refits(refit_fn, selectors, max_workers, timeout)

    lpd_i = loo_refitted.elpd_i + loo_refitted.p_loo_i
    for flat_idx, outcome in outcomes.items():
        position = {
            dim: int(pos) for dim, pos in zip(obs_dims, np.unravel_index(flat_idx, pareto_k.shape))
        }
        if isinstance(outcome, Exception):
            warnings.warn(
                f"Refit for observation {selectors[flat_idx]} failed with {outcome!r}. "
                "Its pointwise elpd is reported as missing.",
                RefitFailureWarning,
                stacklevel=2,
            )
            _log.debug("Refit for observation %s failed", selectors[flat_idx], exc_info=outcome)
            loo_refitted.elpd_i[position] = np.nan
            loo_refitted.p_loo_i[position] = np.nan
            loo_refitted.mcse_elpd_i[position] = np.nan
            loo_refitted.refit_failed[position] = True
            continue

        n_draws = outcome.size
        elpd_loo_i = _logsumexp(outcome) - np.log(n_draws)
        loo_refitted.elpd_i[position] = elpd_loo_i
        loo_refitted.p_loo_i[position] = lpd_i[position].item() - elpd_loo_i
        loo_refitted.mcse_elpd_i[position] = np.std(np.exp(outcome - elpd_loo_i)) / np.sqrt(
            n_draws
        )
        loo_refitted.pareto_k[position] = 0.0
        loo_refitted.loo_state[position] = LooState.EXACT.value
        loo_refitted.refit_failed[position] = False
        if loo_refitted.log_weights is not None:
            loo_refitted.log_weights[position] = np.nan

    elpd, elpd_se, p_loo, mcse_elpd = _loo_summary(
        loo_refitted.elpd_i, loo_refitted.p_loo_i, loo_refitted.mcse_elpd_i
    )
    loo_refitted.elpd = elpd
    loo_refitted.se = elpd_se
    loo_refitted.p = p_loo
    loo_refitted.mcse_elpd = mcse_elpd
    loo_refitted.n_diverged = _count_diverged(loo_refitted.pareto_k)
    loo_refitted.warning = bool(
        np.any(loo_refitted.pareto_k.values > loo_refitted.good_k)
        or np.any(loo_refitted.refit_failed.values)
    )

    return _drop_pointwise(loo_refitted, pointwise)


def _get_refit_function(wrapper):
    if isinstance(wrapper, SamplingWrapper):
        not_implemented = wrapper.check_implemented_methods(REQUIRED_METHODS)
        if not_implemented:
            raise TypeError(
                "Passed wrapper instance does not implement all methods required for reloo "
                f"to work. Check the documentation of SamplingWrapper. {not_implemented} must be "
                "implemented and were not found."
            )
        return wrapper.refit
    if callable(wrapper):
        return wrapper
    raise TypeError(
        "wrapper must be an instance of SamplingWrapper or a subclass, or a callable "
        "returning the held-out log likelihood of a refit."
    )


def _fill_pointwise_defaults(loo_data, data, var_name):
    """Add the pointwise attributes needed by reloo when they are missing."""
    if loo_data.p_loo_i is None:
        if data is None:
            raise ValueError(
                "reloo requires the pointwise effective number of parameters (p_loo_i) "
                "or a wrapper holding the data of the fit to compute it."
            )
        loo_inputs = _prepare_loo_inputs(data, var_name)
        lpd_i = logsumexp(
            loo_inputs.log_likelihood, b=1 / loo_inputs.n_samples, dims=loo_inputs.sample_dims
        )
        loo_data.p_loo_i = (lpd_i - loo_data.elpd_i).rename("p_loo_i")
    if loo_data.mcse_elpd_i is None:
        loo_data.mcse_elpd_i = xr.full_like(loo_data.elpd_i, np.nan, dtype=float).rename(
            "mcse_elpd_i"
        )
    if loo_data.loo_state is None:
        loo_data.loo_state = _initial_loo_state(loo_data.pareto_k)
    if loo_data.refit_failed is None:
        loo_data.refit_failed = xr.zeros_like(loo_data.pareto_k, dtype=bool).rename(
            "refit_failed"
        )
    # pointwise values are modified in place below
    for name in ("elpd_i", "pareto_k", "p_loo_i", "mcse_elpd_i"):
        loo_data[name] = loo_data[name].astype(float)


def _refit_selector(pareto_k, flat_idx, obs_dims):
    """Index passed to the refit function for the observation at `flat_idx`."""
    if len(obs_dims) == 1:
        return int(flat_idx)
    positions = np.unravel_index(flat_idx, pareto_k.shape)
    return {
        dim: pareto_k[dim].values[pos].item() for dim, pos in zip(obs_dims, positions)
    }


def _run_refits(refit_fn, selectors, max_workers, timeout):
    """Run the refits in a bounded thread pool.

    The timeout of each refit starts when a worker picks it up, refits queued behind
    a slow one keep waiting for a free worker.

    Returns
    -------
    dict
        Held-out log likelihood draws or the exception raised, keyed by the flat index
        of each observation.
    """
    outcomes = {}
    started = {}

    def timed_refit(flat_idx, selector):
        started[flat_idx] = time.monotonic()
        return refit_fn(selector)

    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reloo")
    try:
        pending = {
            executor.submit(timed_refit, flat_idx, selector): flat_idx
            for flat_idx, selector in selectors.items()
        }
        while pending:
            done, _ = wait(pending, timeout=_next_deadline(pending, started, timeout))
            for future in done:
                flat_idx = pending.pop(future)
                try:
                    outcomes[flat_idx] = _check_refit_log_lik(future.result())
                except Exception as err:  # pylint: disable=broad-exception-caught
                    outcomes[flat_idx] = err
            if timeout is None:
                continue
            now = time.monotonic()
            for future, flat_idx in list(pending.items()):
                if flat_idx in started and now - started[flat_idx] >= timeout:
                    del pending[future]
                    outcomes[flat_idx] = RefitError(
                        f"Refit did not finish within {timeout} seconds"
                    )
    finally:
        # timed out refits can't be interrupted, their threads finish in the background
        executor.shutdown(wait=timeout is None, cancel_futures=True)
    return outcomes


def _next_deadline(pending, started, timeout):
    """Seconds until the first running refit times out."""
    if timeout is None:
        return None
    deadlines = [
        started[flat_idx] + timeout for flat_idx in pending.values() if flat_idx in started
    ]
    if not deadlines:
        return timeout
    return max(min(deadlines) - time.monotonic(), 0)


def _check_refit_log_lik(log_lik):
    log_lik = np.asarray(log_lik, dtype=float).ravel()
    if log_lik.size == 0:
        raise RefitError("Refit returned no log likelihood values")
    if not np.all(np.isfinite(log_lik)):
        raise RefitError("Refit returned non finite log likelihood values")
    return log_lik


def _drop_pointwise(loo_data, pointwise):
    if not pointwise:
        for name in (
            "elpd_i",
            "pareto_k",
            "p_loo_i",
            "mcse_elpd_i",
            "loo_state",
            "refit_failed",
        ):
            loo_data[name] = None
    return loo_data
