import numpy as np
import pytest
from numpy.testing import assert_allclose

from .helpers import importorskip

azb = importorskip("arviz_base")

from psisloo.validate import (
    validate_dims,
    validate_dims_chain_draw_axis,
    validate_good_k,
    validate_k_threshold,
    validate_max_workers,
)


def test_validate_dims():
    assert validate_dims(None) == list(azb.rcParams["data.sample_dims"])
    assert validate_dims("draw") == ["draw"]
    assert validate_dims(("chain", "draw")) == ["chain", "draw"]


def test_validate_dims_chain_draw_axis():
    assert validate_dims_chain_draw_axis(["chain", "draw"]) == (["chain", "draw"], -2, -1)
    assert validate_dims_chain_draw_axis("draw") == (["draw"], None, -1)
    with pytest.raises(ValueError, match="dims can only have 1 or 2 elements"):
        validate_dims_chain_draw_axis(["chain", "draw", "obs"])


@pytest.mark.parametrize("max_workers", [None, 1, 4, np.int64(2)])
def test_validate_max_workers(max_workers):
    assert validate_max_workers(max_workers) == max_workers


@pytest.mark.parametrize("max_workers", [0, -2, 1.5])
def test_validate_max_workers_invalid(max_workers):
    with pytest.raises(ValueError, match="max_workers must be a positive integer"):
        validate_max_workers(max_workers)


def test_validate_k_threshold():
    assert validate_k_threshold(None, 0.69) == 0.69
    assert validate_k_threshold(0.5, 0.69) == 0.5
    assert validate_k_threshold(-np.inf, 0.69) == -np.inf
    with pytest.raises(ValueError, match="can't be NaN"):
        validate_k_threshold(np.nan, 0.7)
    with pytest.raises(TypeError, match="must be a number"):
        validate_k_threshold("0.7", 0.7)


def test_validate_good_k():
    assert validate_good_k(None, 2000) == 0.7
    assert validate_good_k(0.6, 2000) == 0.6
    assert_allclose(validate_good_k("sample_size", 1000), 2 / 3)
    assert validate_good_k("sample_size", 10000) == 0.7
    assert validate_good_k("sample_size", 8) == 0.7
    with pytest.raises(ValueError, match="'sample_size'"):
        validate_good_k("auto", 2000)
    with pytest.raises(ValueError, match="interval"):
        validate_good_k(0, 2000)
    with pytest.raises(TypeError, match="must be a number"):
        validate_good_k(True, 2000)
