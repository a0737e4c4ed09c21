"""Test compare function."""

# pylint: disable=redefined-outer-name, unused-argument
from copy import deepcopy

import numpy as np
import pytest
from numpy.testing import assert_allclose

from ..helpers import create_poisson_model, importorskip, poisson_data

azb = importorskip("arviz_base")
pd = importorskip("pandas")

from psisloo import compare, elpd_diff, loo
from psisloo.loo.compare import _calculate_ics


@pytest.fixture(scope="module")
def poisson_loo(poisson_model):
    return loo(poisson_model, pointwise=True)


@pytest.fixture(scope="module")
def misfit_model():
    """Poisson model fitted with a prior far away from the data."""
    return create_poisson_model(
        poisson_data(seed=0), seed=12, prior_shape=400.0, prior_rate=50.0
    )


@pytest.fixture(scope="module")
def misfit_loo(misfit_model):
    return loo(misfit_model, pointwise=True)


def test_elpd_diff(poisson_loo, misfit_loo):
    diff, se = elpd_diff(poisson_loo, misfit_loo)
    pointwise_diff = poisson_loo.elpd_i.values - misfit_loo.elpd_i.values
    assert_allclose(diff, poisson_loo.elpd - misfit_loo.elpd)
    assert_allclose(se, np.sqrt(50 * np.var(pointwise_diff)))
    assert diff > 0


def test_elpd_diff_symmetric(poisson_loo, misfit_loo):
    diff_ab, se_ab = elpd_diff(poisson_loo, misfit_loo)
    diff_ba, se_ba = elpd_diff(misfit_loo, poisson_loo)
    assert_allclose(diff_ab, -diff_ba)
    assert_allclose(se_ab, se_ba)


def test_elpd_diff_same_model(poisson_loo):
    assert elpd_diff(poisson_loo, poisson_loo) == (0.0, 0.0)


def test_elpd_diff_nan_propagates(poisson_loo, misfit_loo):
    with_nan = deepcopy(misfit_loo)
    with_nan.elpd_i.values[3] = np.nan
    diff, se = elpd_diff(poisson_loo, with_nan)
    assert np.isnan(diff)
    assert np.isnan(se)


def test_elpd_diff_errors(poisson_loo):
    subset = deepcopy(poisson_loo)
    subset.elpd_i = subset.elpd_i.isel(obs_id=slice(0, 10))
    with pytest.raises(ValueError, match="same number of observations"):
        elpd_diff(poisson_loo, subset)

    not_pointwise = deepcopy(poisson_loo)
    not_pointwise.elpd_i = None
    with pytest.raises(ValueError, match="missing pointwise ELPD values"):
        elpd_diff(poisson_loo, not_pointwise)

    with pytest.raises(TypeError, match="must be an ELPDData object"):
        elpd_diff(poisson_loo, 3.0)


@pytest.mark.parametrize("method", ["stacking", "BB-pseudo-BMA", "pseudo-BMA"])
def test_compare_same(poisson_loo, method):
    data_dict = {"first": poisson_loo, "second": poisson_loo}

    weight = compare(data_dict, method=method)["weight"].to_numpy()
    assert_allclose(weight[0], weight[1])
    assert_allclose(np.sum(weight), 1.0)


def test_compare_unknown_method(poisson_loo, misfit_loo):
    model_dict = {"good": poisson_loo, "misfit": misfit_loo}
    with pytest.raises(
        ValueError,
        match="Invalid method 'Unknown'. Available methods: stacking, bb-pseudo-bma, pseudo-bma",
    ):
        compare(model_dict, method="Unknown")


@pytest.mark.parametrize("method", ["stacking", "BB-pseudo-BMA", "pseudo-BMA"])
def test_compare_different(poisson_loo, misfit_loo, method):
    model_dict = {"misfit": misfit_loo, "good": poisson_loo}
    comp = compare(model_dict, method=method)
    assert list(comp.index) == ["good", "misfit"]
    assert comp["weight"]["good"] > comp["weight"]["misfit"]
    assert_allclose(np.sum(comp["weight"]), 1.0)


def test_compare_columns(poisson_loo, misfit_loo):
    comp = compare({"misfit": misfit_loo, "good": poisson_loo})
    assert list(comp.columns) == ["rank", "elpd", "p", "elpd_diff", "weight", "se", "dse", "warning"]
    assert comp.loc["good", "rank"] == 0
    assert comp.loc["good", "elpd_diff"] == 0
    assert comp.loc["good", "dse"] == 0
    diff, se = elpd_diff(poisson_loo, misfit_loo)
    assert_allclose(comp.loc["misfit", "elpd_diff"], diff)
    assert_allclose(comp.loc["misfit", "dse"], se)
    assert comp["warning"].dtype == bool


def test_compare_datatree_inputs(poisson_model, misfit_model, poisson_loo):
    comp = compare({"good": poisson_model, "misfit": misfit_model})
    assert_allclose(comp.loc["good", "elpd"], poisson_loo.elpd)


def test_compare_missing_pointwise_values(poisson_loo, misfit_loo):
    with_nan = deepcopy(misfit_loo)
    with_nan.elpd_i.values[0] = np.nan
    with_nan.elpd = np.nan
    with pytest.warns(UserWarning, match="model weights can't be computed"):
        comp = compare({"good": poisson_loo, "nan": with_nan})
    assert np.isnan(comp.loc["nan", "elpd_diff"])
    assert comp["weight"].isna().all()


def test_compare_different_sizes(poisson_loo):
    subset = deepcopy(poisson_loo)
    subset.elpd_i = subset.elpd_i.isel(obs_id=slice(0, 10))
    with pytest.raises(ValueError) as exc_info:
        compare({"full": poisson_loo, "subset": subset})
    assert str(exc_info.value) == (
        "All models must have the same number of observations, but models have inconsistent "
        "observation counts: 'subset' (10), 'full' (50)"
    )


def test_calculate_ics(poisson_model, poisson_loo):
    ics = _calculate_ics({"model": poisson_model, "precomputed": poisson_loo})
    assert_allclose(ics["model"].elpd, poisson_loo.elpd)
    assert ics["precomputed"] is not poisson_loo


def test_calculate_ics_pointwise_error(poisson_loo):
    not_pointwise = deepcopy(poisson_loo)
    not_pointwise.elpd_i = None
    with pytest.raises(ValueError, match="Model 'b' is missing pointwise ELPD values"):
        _calculate_ics({"a": poisson_loo, "b": not_pointwise})


def test_calculate_ics_single_model(poisson_loo):
    with pytest.raises(ValueError, match="At least two models"):
        _calculate_ics({"a": poisson_loo})
