# pylint: disable=redefined-outer-name
import numpy as np
import pytest

from .helpers import importorskip, poisson_data, poisson_log_likelihood

azb = importorskip("arviz_base")
xr = importorskip("xarray")

from psisloo import ELPDData, LooState, get_log_likelihood
from psisloo.utils import ok_k_threshold


def test_get_log_likelihood(poisson_model):
    log_lik = get_log_likelihood(poisson_model)
    assert log_lik.dims == ("chain", "draw", "obs_id")
    assert get_log_likelihood(poisson_model, var_name="y").equals(log_lik)


def test_get_log_likelihood_errors(poisson_model):
    with pytest.raises(TypeError, match="No log likelihood data named missing"):
        get_log_likelihood(poisson_model, var_name="missing")

    no_log_lik = azb.from_dict({"posterior": {"lam": np.ones((2, 10))}})
    with pytest.raises(TypeError, match="log likelihood not found"):
        get_log_likelihood(no_log_lik)

    in_sample_stats = azb.from_dict({"sample_stats": {"log_likelihood": np.ones((2, 10, 3))}})
    with pytest.raises(TypeError, match="log likelihood not found"):
        get_log_likelihood(in_sample_stats)


def test_get_log_likelihood_several_variables():
    y = poisson_data(n_obs=5)
    lam = np.random.default_rng(3).gamma(2.0, 1.0, size=(2, 20))
    log_lik = poisson_log_likelihood(y, lam)
    idata = azb.from_dict(
        {"log_likelihood": {"y": log_lik, "z": log_lik}},
        dims={"y": ["obs_id"], "z": ["obs_id"]},
    )
    with pytest.raises(TypeError, match="var_name cannot be None"):
        get_log_likelihood(idata)
    assert get_log_likelihood(idata, var_name="z").dims == ("chain", "draw", "obs_id")


def test_ok_k_threshold():
    assert ok_k_threshold(0.7) == 0.5
    assert ok_k_threshold(0.3) == 0.3


def test_loo_state_values():
    assert LooState.APPROXIMATE == "approximate"
    assert LooState("exact") is LooState.EXACT


def test_elpd_data_item_access():
    elpd_data = ELPDData(
        kind="loo",
        elpd=-10.0,
        se=1.0,
        p=1.5,
        n_samples=2000,
        n_data_points=5,
        warning=False,
        good_k=0.7,
    )
    assert elpd_data["p"] == 1.5
    elpd_data["p"] = 2.0
    assert elpd_data.p == 2.0
    summary = str(elpd_data)
    assert "Computed from 2000 posterior samples and 5 observations" in summary
    assert "Pareto k diagnostic values" not in summary


def test_elpd_data_str_diverged():
    elpd_data = ELPDData(
        kind="loo",
        elpd=-10.0,
        se=1.0,
        p=1.5,
        n_samples=2000,
        n_data_points=5,
        warning=True,
        good_k=0.7,
        n_diverged=2,
    )
    assert "2 observation(s) with Pareto k >= 1" in str(elpd_data)
