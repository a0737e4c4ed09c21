"""Class with dataarray functions.

"dataarray" functions take :class:`xarray.DataArray` as inputs.
"""

from xarray import apply_ufunc

from psisloo.base.array import array_stats
from psisloo.validate import validate_dims, validate_dims_chain_draw_axis


class BaseDataArray:
    """Class with numpy+scipy only functions that take DataArray inputs."""

    def __init__(self, array_class=None):
        self.array_class = array_stats if array_class is None else array_class

    def psislw(self, da, r_eff=1, dim=None, max_workers=None):
        """Compute log weights for Pareto-smoothed importance sampling (PSIS) method."""
        dims = validate_dims(dim)
        log_weights, pareto_k = apply_ufunc(
            self.array_class.psislw,
            da,
            input_core_dims=[dims],
            output_core_dims=[dims, []],
            kwargs={
                "axis": list(range(-len(dims), 0)),
                "r_eff": r_eff,
                "max_workers": max_workers,
            },
        )
        return log_weights.rename("log_weights"), pareto_k.rename("pareto_k")

    def ess(self, da, sample_dims=None, relative=False):
        """Compute the effective sample size for the mean on DataArray input."""
        dims, chain_axis, draw_axis = validate_dims_chain_draw_axis(sample_dims)
        return apply_ufunc(
            self.array_class.ess,
            da,
            input_core_dims=[dims],
            output_core_dims=[[]],
            kwargs={"chain_axis": chain_axis, "draw_axis": draw_axis, "relative": relative},
        )


dataarray_stats = BaseDataArray(array_class=array_stats)
