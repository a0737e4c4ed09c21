"""Pareto-smoothed importance sampling LOO (PSIS-LOO-CV)."""

import numpy as np
import xarray as xr
from xarray_einstats.stats import logsumexp

from psisloo.loo.helper_loo import (
    _compute_loo_results,
    _count_diverged,
    _get_log_likelihood_i,
    _get_r_eff,
    _get_weights_and_k_i,
    _initial_loo_state,
    _mcse_elpd_i,
    _prepare_loo_inputs,
    _warn_pareto_k,
    _warn_pointwise_issues,
)
from psisloo.utils import ELPDData
from psisloo.validate import validate_good_k, validate_max_workers


def loo(
    data,
    pointwise=None,
    var_name=None,
    reff=None,
    log_weights=None,
    pareto_k=None,
    max_workers=None,
    good_k=None,
):
    r"""Compute Pareto-smoothed importance sampling leave-one-out cross-validation (PSIS-LOO-CV).

    Estimates the expected log pointwise predictive density (elpd) using Pareto-smoothed
    importance sampling leave-one-out cross-validation (PSIS-LOO-CV). Also calculates LOO's
    standard error and the effective number of parameters. The method is described in [1]_
    and [2]_.

    Parameters
    ----------
    data : DataTree, InferenceData, DataArray or ndarray
        Input data. DataTree and InferenceData inputs should contain the ``log_likelihood``
        group and, to estimate the relative efficiency, the ``posterior`` group.
        DataArray inputs must have the sample dimensions. Array inputs are interpreted as
        ``(draw, observation)`` when 2D and ``(chain, draw, *observation)`` otherwise.
    pointwise : bool, optional
        If True the pointwise predictive accuracy will be returned. Defaults to
        ``rcParams["stats.ic_pointwise"]``.
    var_name : str, optional
        The name of the variable in log_likelihood groups storing the pointwise log
        likelihood data to use for loo computation.
    reff : float, optional
        Relative MCMC efficiency, ``ess / n`` i.e. number of effective samples divided by the number
        of actual samples. Computed from the posterior by default, 1 when it is not available.
    log_weights : DataArray, optional
        Smoothed log weights. It must have the same shape as the log likelihood data.
        Must be provided together with pareto_k or both must be None.
    pareto_k : DataArray, optional
        Pareto shape values over the observation dimensions.
        Must be provided together with log_weights or both must be None.
    max_workers : int, optional
        Number of threads used to smooth the importance ratios of the observations.
        Serial computation by default.
    good_k : float or "sample_size", optional
        Upper bound of the "ok" Pareto k category, observations above it are flagged
        "bad" and turn on ``warning``. Defaults to 0.7. ``"sample_size"`` uses the
        sample size dependent threshold ``min(1 - 1/log10(S), 0.7)`` of [2]_.

    Returns
    -------
    ELPDData
        Object with the following attributes:

        - **kind**: "loo"
        - **elpd**: expected log pointwise predictive density
        - **se**: standard error of the elpd
        - **p**: effective number of parameters
        - **n_samples**: number of samples
        - **n_data_points**: number of data points
        - **warning**: True if the estimated shape parameter of Pareto distribution is greater
          than ``good_k``.
        - **good_k**: Pareto k threshold used for the warning and the "bad" category.
        - **n_diverged**: number of observations with ``pareto_k >= 1``. They are
          included in ``elpd`` and ``se``, which are unreliable when it is not 0.
        - **mcse_elpd**: Monte Carlo standard error of the elpd, missing if any observation
          has ``pareto_k >= 1``.
        - **elpd_i**, **pareto_k**, **p_loo_i**, **mcse_elpd_i**: pointwise
          :class:`~xarray.DataArray` results, only if ``pointwise=True``
        - **loo_state**, **refit_failed**: pointwise origin of each value, all
          observations are approximate until refitted with :func:`reloo`.
        - **log_weights**: Smoothed log weights.

    Notes
    -----
    Problems with single observations never raise. Observations with non finite log
    likelihood values get missing pointwise results, which propagate to the aggregates.
    Observations whose tail is too short get ``pareto_k = inf``.

    Examples
    --------
    Calculate LOO of a model:

    .. ipython::

        In [1]: import numpy as np
           ...: from scipy import stats
           ...: from psisloo import loo
           ...: rng = np.random.default_rng(0)
           ...: y = rng.poisson(3, size=50)
           ...: lam = rng.gamma(1 + y.sum(), 1 / (1 + y.size), size=(4, 500, 1))
           ...: loo(stats.poisson.logpmf(y, lam))

    See Also
    --------
    :func:`reloo` : Refit observations where the approximation fails.
    :func:`compare` : Compare models based on their ELPD.

    References
    ----------

    .. [1] Vehtari et al. *Practical Bayesian model evaluation using leave-one-out cross-validation
       and WAIC*. Statistics and Computing. 27(5) (2017) https://doi.org/10.1007/s11222-016-9696-4
       arXiv preprint https://arxiv.org/abs/1507.04544.

    .. [2] Vehtari et al. *Pareto Smoothed Importance Sampling*.
       Journal of Machine Learning Research, 25(72) (2024) https://jmlr.org/papers/v25/19-556.html
       arXiv preprint https://arxiv.org/abs/1507.02646
    """
    loo_inputs = _prepare_loo_inputs(data, var_name)
    max_workers = validate_max_workers(max_workers)

    if reff is None:
        reff = _get_r_eff(data, loo_inputs.n_samples, loo_inputs.sample_dims)

    if (log_weights is None) != (pareto_k is None):
        raise ValueError(
            "Both log_weights and pareto_k must be provided together or both must be None. "
            "Only one was provided."
        )

    return _compute_loo_results(
        log_likelihood=loo_inputs.log_likelihood,
        sample_dims=loo_inputs.sample_dims,
        n_samples=loo_inputs.n_samples,
        n_data_points=loo_inputs.n_data_points,
        pointwise=pointwise,
        log_weights=log_weights,
        pareto_k=pareto_k,
        reff=reff,
        max_workers=max_workers,
        good_k=good_k,
    )


def loo_i(i, data, var_name=None, reff=None, log_weights=None, pareto_k=None, good_k=None):
    r"""Compute PSIS-LOO-CV for a single observation.

    Parameters
    ----------
    i : int | dict | scalar
        Observation selector. Must be one of:

        - **int**: Positional index in flattened observation order across all observation
          dimensions.
        - **dict**: Label-based mapping ``{obs_dim: coord_value}`` for all observation
          dimensions. Uses ``.sel`` semantics.
        - **scalar label**: Only when there is exactly one observation dimension.
    data : DataTree, InferenceData, DataArray or ndarray
        Input data, see :func:`loo`.
    var_name : str, optional
        The name of the variable in log_likelihood groups storing the pointwise log
        likelihood data to use for loo computation.
    reff : float, optional
        Relative MCMC efficiency. Computed from the posterior by default.
    log_weights, pareto_k : DataArray, optional
        Precomputed smoothed log weights and Pareto shapes, either for all observations
        or only for observation `i`. Both or none must be provided.
    good_k : float or "sample_size", optional
        Pareto k threshold, see :func:`loo`.

    Returns
    -------
    ELPDData
        Same attributes as :func:`loo` with ``n_data_points=1``. The standard error
        is 0 as it is undefined for a single observation.
    """
    loo_inputs = _prepare_loo_inputs(data, var_name)
    sample_dims = loo_inputs.sample_dims
    n_samples = loo_inputs.n_samples
    log_lik_i = _get_log_likelihood_i(loo_inputs.log_likelihood, i, loo_inputs.obs_dims)

    if reff is None and log_weights is None:
        reff = _get_r_eff(data, n_samples, sample_dims)
    elif reff is None:
        reff = 1.0

    log_weights_i, pareto_k_i = _get_weights_and_k_i(
        log_weights, pareto_k, i, loo_inputs.obs_dims, sample_dims, reff, log_lik_i
    )

    non_finite = ~np.isfinite(log_lik_i).all(dim=sample_dims)
    _warn_pointwise_issues(pareto_k_i, non_finite)

    elpd_i = logsumexp(log_weights_i + log_lik_i, dims=sample_dims).where(~non_finite)
    lppd_i = logsumexp(log_lik_i, b=1 / n_samples, dims=sample_dims)
    mcse_elpd_i = _mcse_elpd_i(log_lik_i, log_weights_i, elpd_i, pareto_k_i, reff, sample_dims)
    good_k = validate_good_k(good_k, n_samples)
    warn_mg = _warn_pareto_k(pareto_k_i, good_k)

    return ELPDData(
        kind="loo",
        elpd=elpd_i.item(),
        se=0.0,
        p=(lppd_i - elpd_i).item(),
        n_samples=n_samples,
        n_data_points=1,
        warning=warn_mg,
        good_k=good_k,
        elpd_i=elpd_i.rename("elpd_i"),
        pareto_k=pareto_k_i,
        p_loo_i=(lppd_i - elpd_i).rename("p_loo_i"),
        mcse_elpd=mcse_elpd_i.item(),
        mcse_elpd_i=mcse_elpd_i,
        log_weights=log_weights_i,
        loo_state=_initial_loo_state(pareto_k_i),
        refit_failed=xr.zeros_like(pareto_k_i, dtype=bool).rename("refit_failed"),
        n_diverged=_count_diverged(pareto_k_i),
    )
