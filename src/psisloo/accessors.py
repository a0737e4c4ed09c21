"""psisloo xarray accessors."""

import xarray as xr

from psisloo.base import dataarray_stats

__all__ = ["PsisDaAccessor"]


@xr.register_dataarray_accessor("psis")
class PsisDaAccessor:
    """Pareto smoothed importance sampling accessor class for DataArrays."""

    def __init__(self, xarray_obj):
        self._obj = xarray_obj

    def _apply(self, func, **kwargs):
        """Apply function to DataArray input."""
        if isinstance(func, str):
            func = getattr(dataarray_stats, func)
        return func(self._obj, **kwargs)

    def psislw(self, r_eff=1, dim=None, max_workers=None):
        """Compute Pareto smoothed log weights from log importance ratios.

        For full documentation see :meth:`psisloo.base.array.BaseArray.psislw`
        """
        return self._apply("psislw", r_eff=r_eff, dim=dim, max_workers=max_workers)

    def ess(self, sample_dims=None, relative=False):
        """Compute the effective sample size for the mean."""
        return self._apply("ess", sample_dims=sample_dims, relative=relative)
