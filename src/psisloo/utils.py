"""psisloo general utility functions."""

from dataclasses import dataclass
from enum import Enum

import numpy as np
from xarray import DataArray

__all__ = ["ELPDData", "LooState", "get_log_likelihood"]


class LooState(str, Enum):
    """Origin of the pointwise elpd value of an observation."""

    APPROXIMATE = "approximate"
    EXACT = "exact"


def get_log_likelihood(idata, var_name=None):
    """Retrieve the log likelihood dataarray of a given variable."""
    if not hasattr(idata, "log_likelihood"):
        raise TypeError("log likelihood not found in inference data object")
    if var_name is None:
        var_names = list(idata.log_likelihood.data_vars)
        if len(var_names) > 1:
            raise TypeError(
                f"Found several log likelihood arrays {var_names}, var_name cannot be None"
            )
        return idata.log_likelihood[var_names[0]]
    try:
        log_likelihood = idata.log_likelihood[var_name]
    except KeyError as err:
        raise TypeError(f"No log likelihood data named {var_name} found") from err
    return log_likelihood


def ok_k_threshold(good_k):
    """Upper bound of the "good" Pareto k category."""
    return min(0.5, good_k)


BASE_FMT = """Computed from {{n_samples}} posterior samples and \
{{n_points}} observations log-likelihood matrix.

{{0:{0}}} Estimate       SE
elpd_{{kind}} {{ic_value:8.2f}}  {{ic_se:7.2f}}
p_{{kind:{1}}} {{p_value:8.2f}}        -"""
POINTWISE_LOO_FMT = """------

Pareto k diagnostic values:
                         {{0:>{0}}} {{1:>6}}
(-Inf, {{10:.2f}}]   (good)     {{2:{0}d}} {{6:6.1f}}%
 ({{10:.2f}}, {{11:.2f}}]   (ok)       {{3:{0}d}} {{7:6.1f}}%
   ({{11:.2f}}, 1]   (bad)      {{4:{0}d}} {{8:6.1f}}%
    (1, Inf)   (very bad) {{5:{0}d}} {{9:6.1f}}%
"""


@dataclass
class ELPDData:  # pylint: disable=too-many-instance-attributes
    """Class to contain the results of PSIS-LOO-CV.

    The pointwise attributes are :class:`~xarray.DataArray` objects over the
    observation dimensions, they are only stored when requested.
    """

    kind: str
    elpd: float
    se: float
    p: float
    n_samples: int
    n_data_points: int
    warning: bool
    good_k: float
    elpd_i: DataArray = None
    pareto_k: DataArray = None
    p_loo_i: DataArray = None
    mcse_elpd: float = None
    mcse_elpd_i: DataArray = None
    log_weights: DataArray = None
    loo_state: DataArray = None
    refit_failed: DataArray = None
    n_diverged: int = 0

    def __str__(self):
        """Print elpd data in a user friendly way."""
        kind = self.kind
        padding = len(kind) + 5

        base = BASE_FMT.format(padding, padding - 2)
        base = base.format(
            "",
            kind=kind,
            n_samples=self.n_samples,
            n_points=self.n_data_points,
            ic_value=self.elpd,
            ic_se=self.se,
            p_value=self.p,
        )

        if self.warning:
            base += "\n\nThere has been a warning during the calculation. Please check the results."

        if self.loo_state is not None:
            n_exact = int(np.sum(self.loo_state.values == LooState.EXACT.value))
            if n_exact:
                base += f"\n\n{n_exact} observation(s) computed with exact refits."
        if self.refit_failed is not None:
            n_failed = int(np.sum(self.refit_failed.values))
            if n_failed:
                base += f"\n{n_failed} refit(s) failed, their pointwise values are missing."

        if self.n_diverged:
            base += (
                f"\n\n{self.n_diverged} observation(s) with Pareto k >= 1 are included in "
                "the elpd and its SE, both are unreliable."
            )

        if kind == "loo" and self.pareto_k is not None:
            ok_k = ok_k_threshold(self.good_k)
            pareto_k = np.asarray(self.pareto_k, dtype=float).ravel()
            pareto_k = pareto_k[~np.isnan(pareto_k)]
            # bins are closed on the right
            counts = np.array(
                [
                    np.sum(pareto_k <= ok_k),
                    np.sum((pareto_k > ok_k) & (pareto_k <= self.good_k)),
                    np.sum((pareto_k > self.good_k) & (pareto_k <= 1)),
                    np.sum(pareto_k > 1),
                ]
            )
            pcts = counts / max(np.sum(counts), 1) * 100
            extended = POINTWISE_LOO_FMT.format(max(4, len(str(np.max(counts)))))
            extended = extended.format("Count", "Pct.", *counts, *pcts, ok_k, self.good_k)
            base = "\n".join([base, extended])

        return base

    def __repr__(self):
        """Alias to ``__str__``."""
        return self.__str__()

    def __getitem__(self, key):
        """Define getitem magic method."""
        return getattr(self, key)

    def __setitem__(self, key, item):
        """Define setitem magic method."""
        setattr(self, key, item)
