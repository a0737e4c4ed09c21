"""Class with array functions.

"array" functions work on any dimension array,
batching as necessary.
"""

import numpy as np

from psisloo.base.diagnostics import _DiagnosticsBase
from psisloo.base.stats_utils import make_ufunc


def process_chain_none(ary, chain_axis, draw_axis):
    """Process array with chain and draw axis to cover the case ``chain_axis=None``."""
    if chain_axis is None:
        ary = np.expand_dims(ary, axis=0)
        chain_axis = 0
        draw_axis = draw_axis + 1 if draw_axis > 0 else draw_axis
    return ary, chain_axis, draw_axis


def process_ary_axes(ary, axes):
    """Process input array and axes to ensure input core dims are the last ones.

    Parameters
    ----------
    ary : array_like
    axes : int or sequence of int
    """
    if axes is None:
        axes = list(range(ary.ndim))
    if isinstance(axes, int):
        axes = [axes]
    axes = [ax if ax >= 0 else ary.ndim + ax for ax in axes]
    reordered_axes = [i for i in range(ary.ndim) if i not in axes] + list(axes)
    ary = np.transpose(ary, axes=reordered_axes)
    return ary, np.arange(-len(axes), 0, dtype=int)


class BaseArray(_DiagnosticsBase):
    """Class with numpy+scipy only functions that take array inputs.

    Notes
    -----
    If a new dimension is created by the function it must be added at the end of the array.
    Otherwise the functions won't be compatible with :func:`xarray.apply_ufunc`.
    """

    def psislw(self, ary, r_eff=1, axis=-1, max_workers=None):
        """Compute log weights for Pareto-smoothed importance sampling (PSIS) method.

        Parameters
        ----------
        ary : array-like
            Log importance ratios. For leave-one-out cross validation these are
            the negated pointwise log likelihood values.
        r_eff : float, default 1
        axis : int, sequence of int or None, default -1
            Axes with the draws of each observation.
        max_workers : int, optional
            Number of threads used to process the observations. Serial by default.

        Returns
        -------
        log_weights : array-like
            Same shape as `ary` but `axis` dimensions moved to the end
        khat : array-like
            Shape of `ary` minus dimensions indicated in `axis`
        """
        ary, axes = process_ary_axes(np.asarray(ary, dtype=float), axis)
        psl_ufunc = make_ufunc(
            self._psislw,
            n_output=2,
            n_input=1,
            n_dims=len(axes),
            ravel=False,
        )
        return psl_ufunc(
            ary,
            out_shape=[tuple(ary.shape[i] for i in axes), ()],
            r_eff=r_eff,
            max_workers=max_workers,
        )

    def ess(self, ary, chain_axis=-2, draw_axis=-1, relative=False):
        """Compute the effective sample size for the mean.

        Parameters
        ----------
        ary : array-like
        chain_axis : int, default -2
        draw_axis : int, default -1
        relative : bool, default False
        """
        ary, chain_axis, draw_axis = process_chain_none(ary, chain_axis, draw_axis)
        ary, _ = process_ary_axes(np.asarray(ary, dtype=float), [chain_axis, draw_axis])
        ess_ufunc = make_ufunc(self._ess_mean, n_output=1, n_input=1, n_dims=2, ravel=False)
        return ess_ufunc(ary, relative=relative)


array_stats = BaseArray()
