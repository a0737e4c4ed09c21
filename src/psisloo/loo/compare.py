"""Compare PSIS-LOO-CV results."""

import warnings
from copy import deepcopy

import numpy as np
import pandas as pd
from arviz_base import rcParams
from scipy.optimize import minimize
from scipy.stats import dirichlet

from psisloo.errors import PSISWarning
from psisloo.loo.loo import loo
from psisloo.utils import ELPDData

__all__ = ["compare", "elpd_diff"]


def elpd_diff(elpd_a, elpd_b):
    r"""Paired difference in ELPD between two models.

    Parameters
    ----------
    elpd_a, elpd_b : ELPDData
        Pointwise results of the two models on the same observations.

    Returns
    -------
    diff : float
        ``elpd_a.elpd - elpd_b.elpd`` computed from the pointwise values.
    se : float
        Standard error of the difference, :math:`\sqrt{n \operatorname{Var}(d_i)}` where
        :math:`d_i` are the pointwise differences. Missing pointwise values make both
        results missing.
    """
    elpd_i_a = _flat_elpd_i(elpd_a, "elpd_a")
    elpd_i_b = _flat_elpd_i(elpd_b, "elpd_b")
    if elpd_i_a.size != elpd_i_b.size:
        raise ValueError(
            "Both models must have the same number of observations, "
            f"got {elpd_i_a.size} and {elpd_i_b.size}"
        )
    diff = elpd_i_a - elpd_i_b
    return float(np.sum(diff)), float(np.sqrt(diff.size * np.var(diff)))


def _flat_elpd_i(elpd_data, name):
    if not isinstance(elpd_data, ELPDData):
        raise TypeError(f"{name} must be an ELPDData object, got {type(elpd_data).__name__}")
    if elpd_data.elpd_i is None:
        raise ValueError(f"{name} is missing pointwise ELPD values. Recalculate with pointwise=True.")
    return np.asarray(elpd_data.elpd_i, dtype=float).ravel()


def compare(
    compare_dict,
    method="stacking",
    var_name=None,
):
    r"""Compare models based on their expected log pointwise predictive density (ELPD).

    The ELPD is estimated by Pareto smoothed importance sampling leave-one-out
    cross-validation, the same method used by :func:`psisloo.loo`.
    The method is described in [1]_ and [2]_.
    By default, the weights are estimated using ``"stacking"`` as described in [3]_.

    Parameters
    ----------
    compare_dict: dict of {str: DataTree or ELPDData}
        A dictionary of model names and :class:`xr.DataTree` or ``ELPDData``.
        ``ELPDData`` inputs must be pointwise, refitted results from :func:`psisloo.reloo`
        are compared like any other.
    method: str, optional
        Method used to estimate the weights for each model. Available options are:

        - 'stacking' : stacking of predictive distributions.
        - 'BB-pseudo-BMA' : pseudo-Bayesian Model averaging using Akaike-type
          weighting. The weights are stabilized using the Bayesian bootstrap.
        - 'pseudo-BMA': pseudo-Bayesian Model averaging using Akaike-type
          weighting, without Bootstrap stabilization (not recommended).

        Defaults to ``rcParams["stats.ic_compare_method"]`` when None.
        For more information read https://arxiv.org/abs/1704.02030
    var_name: str, optional
        If there is more than a single observed variable in the ``DataTree``, which
        should be used as the basis for comparison.

    Returns
    -------
    DataFrame
        A DataFrame, ordered from best to worst model (measured by the ELPD).
        The index reflects the key with which the models are passed to this function.
        The columns are:

        - **rank**: The rank-order of the models. 0 is the best.
        - **elpd**: ELPD estimated using PSIS-LOO-CV.
        - **p**: Estimated effective number of parameters.
        - **elpd_diff**: The difference in ELPD between each model and the top-ranked
          model, that always has an `elpd_diff` of 0.
        - **weight**: Relative weight for each model.
        - **se**: Standard error of the ELPD estimate.
          If method = BB-pseudo-BMA these values are estimated using Bayesian bootstrap.
        - **dse**: Paired standard error of the difference in ELPD between each model
          and the top-ranked model. It's always 0 for the top-ranked model.
        - **warning**: True indicates that the computation of the ELPD may not be reliable.

    Examples
    --------
    Compare two models fitted to the same observations:

    .. ipython::  python
        :okwarning:

        In [1]: import numpy as np
           ...: from psisloo import compare, loo
           ...: rng = np.random.default_rng(0)
           ...: log_lik_a = rng.normal(-1, 0.1, size=(4, 500, 20))
           ...: log_lik_b = rng.normal(-1.2, 0.3, size=(4, 500, 20))
           ...: compare({"a": loo(log_lik_a, pointwise=True), "b": loo(log_lik_b, pointwise=True)})

    See Also
    --------
    :func:`loo` : Compute the ELPD using the Pareto smoothed importance sampling Leave-one-out
        cross-validation method.
    :func:`elpd_diff` : Paired difference between two models.

    References
    ----------

    .. [1] Vehtari et al. *Practical Bayesian model evaluation using leave-one-out cross-validation
        and WAIC*. Statistics and Computing. 27(5) (2017) https://doi.org/10.1007/s11222-016-9696-4
        arXiv preprint https://arxiv.org/abs/1507.04544.

    .. [2] Vehtari et al. *Pareto Smoothed Importance Sampling*.
        Journal of Machine Learning Research, 25(72) (2024) https://jmlr.org/papers/v25/19-556.html
        arXiv preprint https://arxiv.org/abs/1507.02646

    .. [3] Yao et al. *Using stacking to average Bayesian predictive distributions*
        Bayesian Analysis, 13, 3 (2018). https://doi.org/10.1214/17-BA1091
        arXiv preprint https://arxiv.org/abs/1704.02030.
    """
    method = rcParams["stats.ic_compare_method"] if method is None else method
    available_methods = ["stacking", "bb-pseudo-bma", "pseudo-bma"]
    if method.lower() not in available_methods:
        raise ValueError(
            f"Invalid method '{method}'. "
            f"Available methods: {', '.join(available_methods)}. "
            f"Use 'stacking' for robust model averaging as recommended in the original paper "
            f"https://doi.org/10.1214/17-BA1091."
        )

    ics_dict = _calculate_ics(compare_dict, var_name=var_name)
    names = list(ics_dict.keys())

    df_comp = pd.DataFrame(
        {
            "rank": pd.Series(index=names, dtype="int"),
            "elpd": pd.Series(index=names, dtype="float"),
            "p": pd.Series(index=names, dtype="float"),
            "elpd_diff": pd.Series(index=names, dtype="float"),
            "weight": pd.Series(index=names, dtype="float"),
            "se": pd.Series(index=names, dtype="float"),
            "dse": pd.Series(index=names, dtype="float"),
            "warning": pd.Series(index=names, dtype="boolean"),
        }
    )

    ics = pd.DataFrame(
        {
            "elpd": [elpd_data.elpd for elpd_data in ics_dict.values()],
            "p": [elpd_data.p for elpd_data in ics_dict.values()],
            "se": [elpd_data.se for elpd_data in ics_dict.values()],
            "warning": [bool(elpd_data.warning) for elpd_data in ics_dict.values()],
        },
        index=names,
    )
    ics.sort_values(by="elpd", inplace=True, ascending=False, na_position="last")
    ic_i_val = _ic_matrix({name: ics_dict[name] for name in ics.index})
    ses = ics["se"]

    if not np.all(np.isfinite(ic_i_val)):
        warnings.warn(
            "Some pointwise ELPD values are missing, model weights can't be computed.",
            PSISWarning,
            stacklevel=2,
        )
        weights = np.full(len(names), np.nan)
    elif method.lower() == "stacking":
        weights = _stacking_weights(ic_i_val)
    elif method.lower() == "bb-pseudo-bma":
        weights, z_bs = _bb_pseudo_bma_weights(ic_i_val)
        ses = pd.Series(z_bs.std(axis=0), index=ics.index)
    else:
        z_rv = np.exp(ics["elpd"] - ics["elpd"].iloc[0])
        weights = (z_rv / np.sum(z_rv)).to_numpy()

    best_model_name = ics.index[0]
    for idx, val in enumerate(ics.index):
        res = ics.loc[val]
        if idx == 0:
            d_ic, d_std_err = 0.0, 0.0
        else:
            d_ic, d_std_err = elpd_diff(ics_dict[best_model_name], ics_dict[val])

        df_comp.loc[val] = [
            idx,
            res["elpd"],
            res["p"],
            d_ic,
            weights[idx],
            ses.loc[val],
            d_std_err,
            res["warning"],
        ]

    df_comp["rank"] = df_comp["rank"].astype(int)
    df_comp["warning"] = df_comp["warning"].astype(bool)
    return df_comp.sort_values(by="rank")


def _stacking_weights(ic_i_val):
    """Weights maximizing the log score of the stacked pointwise predictive densities."""
    n_models = ic_i_val.shape[1]
    if n_models == 1:
        return np.ones(1)
    exp_ic_i = np.exp(ic_i_val)

    def w_fuller(weights):
        return np.append(weights, max(1.0 - np.sum(weights), 0.0))

    def log_score(weights):
        return -np.sum(np.log(exp_ic_i @ w_fuller(weights)))

    def gradient(weights):
        stacked = exp_ic_i @ w_fuller(weights)
        return -np.sum((exp_ic_i[:, :-1] - exp_ic_i[:, -1:]) / stacked[:, None], axis=0)

    minimize_result = minimize(
        fun=log_score,
        x0=np.full(n_models - 1, 1.0 / n_models),
        jac=gradient,
        bounds=[(0.0, 1.0)] * (n_models - 1),
        constraints=[
            {"type": "ineq", "fun": lambda x: 1.0 - np.sum(x)},
            {"type": "ineq", "fun": np.sum},
        ],
    )
    return w_fuller(minimize_result["x"])


def _bb_pseudo_bma_weights(ic_i_val, b_samples=1000):
    """Pseudo-BMA weights stabilized with the Bayesian bootstrap.

    Returns
    -------
    weights : np.ndarray
        Mean of the bootstrap weights of each model.
    z_bs : np.ndarray
        Bootstrap replicates of the elpd of each model, ``(b_samples, n_models)``.
    """
    n_obs = ic_i_val.shape[0]
    b_weighting = dirichlet.rvs(alpha=[1] * n_obs, size=b_samples, random_state=124)
    z_bs = b_weighting @ (ic_i_val * n_obs)
    u_weights = np.exp(z_bs - z_bs.max(axis=1, keepdims=True))
    weights = u_weights / u_weights.sum(axis=1, keepdims=True)
    return weights.mean(axis=0), z_bs


def _ic_matrix(ics_dict):
    """Store the pointwise elpd values of each model as the columns of a 2D matrix."""
    elpd_i = {
        name: np.asarray(elpd_data.elpd_i, dtype=float).ravel()
        for name, elpd_data in ics_dict.items()
    }
    obs_counts = {name: values.size for name, values in elpd_i.items()}
    if len(set(obs_counts.values())) > 1:
        sorted_counts = sorted(obs_counts.items(), key=lambda item: (item[1], item[0]))
        mismatch_details = ", ".join([f"'{name}' ({count})" for name, count in sorted_counts])
        raise ValueError(
            "All models must have the same number of observations, but models have inconsistent "
            f"observation counts: {mismatch_details}"
        )
    return np.column_stack(list(elpd_i.values()))


def _calculate_ics(compare_dict, var_name=None):
    """Calculate LOO only if necessary.

    It always calls LOO with ``pointwise=True``.

    Parameters
    ----------
    compare_dict :  dict of {str : DataTree or ELPDData}
        A dictionary of model names and DataTree or ELPDData objects.
    var_name : str, optional
        Name of the variable storing pointwise log likelihood values in ``log_likelihood`` group.

    Returns
    -------
    compare_dict : dict of ELPDData
    """
    if len(compare_dict) < 2:
        raise ValueError("At least two models are needed for a comparison.")

    for name, elpd_data in compare_dict.items():
        if isinstance(elpd_data, ELPDData):
            if elpd_data.elpd_i is None:
                raise ValueError(
                    f"Model '{name}' is missing pointwise ELPD values. "
                    f"Recalculate with pointwise=True."
                )
            if elpd_data.kind != "loo":
                raise ValueError(
                    f"Model '{name}' was computed with '{elpd_data.kind}', only 'loo' results "
                    "can be compared."
                )

    compare_dict = deepcopy(compare_dict)
    for name, dataset in compare_dict.items():
        if not isinstance(dataset, ELPDData):
            try:
                compare_dict[name] = loo(dataset, pointwise=True, var_name=var_name)
            except Exception as e:
                raise e.__class__(
                    f"Encountered error trying to compute ELPD from model {name}."
                ) from e
    return compare_dict
