# pylint: disable=redefined-outer-name
import pytest

from .helpers import create_poisson_model, outlier_poisson_data, poisson_data


@pytest.fixture(scope="session")
def poisson_model():
    """Fixture for a well specified Poisson model with 50 observations."""
    return create_poisson_model(poisson_data(seed=0), seed=10)


@pytest.fixture(scope="session")
def outlier_model():
    """Fixture for a Poisson model with a highly influential observation at position 0."""
    return create_poisson_model(outlier_poisson_data(seed=1), seed=11)
