# pylint: disable=redefined-outer-name
import numpy as np
import pytest
from numpy.testing import assert_array_equal

from ..helpers import importorskip

xr = importorskip("xarray")
pd = importorskip("pandas")

from psisloo import ELPDData, loo, pareto_k_flags, pareto_k_table


@pytest.fixture
def k_values():
    return xr.DataArray(
        [0.1, 0.5, 0.6, 0.7, 0.8, 1.0, 1.5, np.inf, np.nan],
        dims=["obs_id"],
        coords={"obs_id": np.arange(9)},
        name="pareto_k",
    )


def test_pareto_k_flags(k_values):
    flags = pareto_k_flags(k_values, good_k=0.7)
    assert isinstance(flags, xr.DataArray)
    assert flags.dims == ("obs_id",)
    assert_array_equal(
        flags.values,
        ["good", "good", "ok", "ok", "bad", "bad", "very bad", "very bad", "undefined"],
    )


def test_pareto_k_flags_array_input():
    flags = pareto_k_flags(np.array([[0.2, 0.9], [1.2, 0.45]]), good_k=0.4)
    assert isinstance(flags, np.ndarray)
    assert_array_equal(flags, [["good", "bad"], ["very bad", "bad"]])


def test_pareto_k_flags_elpd_data(poisson_model):
    loo_data = loo(poisson_model, pointwise=True)
    flags = pareto_k_flags(loo_data)
    assert flags.dims == ("obs_id",)
    assert np.all(np.isin(flags.values, ["good", "ok"]))

    loo_data.pareto_k = None
    with pytest.raises(ValueError, match="Recalculate with pointwise=True"):
        pareto_k_flags(loo_data)


def test_pareto_k_table(k_values):
    elpd_data = ELPDData(
        kind="loo",
        elpd=-10.0,
        se=1.0,
        p=1.0,
        n_samples=2000,
        n_data_points=9,
        warning=True,
        good_k=0.7,
        pareto_k=k_values,
    )
    table = pareto_k_table(elpd_data)
    assert list(table.index) == ["good", "ok", "bad", "very bad", "undefined"]
    assert_array_equal(table["count"], [2, 2, 2, 2, 1])
    assert table["pct"].sum() == pytest.approx(100)


def test_elpd_data_str_counts(k_values):
    elpd_data = ELPDData(
        kind="loo",
        elpd=-10.0,
        se=1.0,
        p=1.0,
        n_samples=2000,
        n_data_points=9,
        warning=True,
        good_k=0.7,
        pareto_k=k_values,
    )
    lines = str(elpd_data).splitlines()
    counts = [int(line.split()[-2]) for line in lines if "(good)" in line or "(ok)" in line]
    assert counts == [2, 2]


def test_pareto_k_flags_default_threshold(poisson_model):
    loo_data = loo(poisson_model, pointwise=True)
    assert loo_data.n_samples == 2000
    loo_data.pareto_k.values[0] = 0.699
    assert pareto_k_flags(loo_data).values[0] == "ok"
    assert pareto_k_flags(loo_data.pareto_k).values[0] == "ok"

    sample_size_loo = loo(poisson_model, pointwise=True, good_k="sample_size")
    sample_size_loo.pareto_k.values[0] = 0.699
    assert pareto_k_flags(sample_size_loo).values[0] == "bad"
