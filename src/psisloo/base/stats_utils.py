"""Stats-utility functions for psisloo."""

from concurrent.futures import ThreadPoolExecutor

import numpy as np

__all__ = ["make_ufunc"]


def make_ufunc(func, n_dims=2, n_output=1, n_input=1, index=Ellipsis, ravel=True):
    """Make ufunc from a function taking 1D array input.

    Parameters
    ----------
    func : callable
    n_dims : int, optional
        Number of core dimensions not broadcasted. Dimensions are skipped from the end.
        At minimum n_dims > 0.
    n_output : int, optional
        Select number of results returned by `func`.
        If n_output > 1, ufunc returns a tuple of objects else returns an object.
    n_input : int, optional
        Number of **array** inputs to func, i.e. ``n_input=2`` means that func is called
        with ``func(ary1, ary2, *args, **kwargs)``
    index : int, optional
        Slice ndarray with `index`. Defaults to `Ellipsis`.
    ravel : bool, optional
        If true, ravel the ndarray before calling `func`.

    Returns
    -------
    callable
        ufunc wrapper for `func`. It accepts the extra keyword arguments ``out_shape``,
        the core shape of each output, and ``max_workers``. When ``max_workers`` is larger
        than one the batched calls are distributed over a thread pool, they never share
        mutable state so the result does not depend on the number of workers.
    """
    if n_dims is not None and n_dims < 1:
        raise TypeError("n_dims must be one or higher.")

    def _ufunc(*args, out_shape=None, max_workers=None, **kwargs):
        arys = args[:n_input]
        element_shape = arys[0].shape[:-n_dims]
        if out_shape is None:
            out_shape = [()] * n_output
        elif n_output == 1:
            out_shape = [out_shape]
        out = tuple(np.empty((*element_shape, *tuple(shape))) for shape in out_shape)

        def _call(idx):
            arys_idx = [ary[idx].ravel() if ravel else ary[idx] for ary in arys]
            return idx, func(*arys_idx, *args[n_input:], **kwargs)

        indices = list(np.ndindex(element_shape))
        if max_workers is None or max_workers <= 1 or len(indices) < 2:
            results = map(_call, indices)
            executor = None
        else:
            executor = ThreadPoolExecutor(max_workers=max_workers)
            results = executor.map(_call, indices)
        try:
            for idx, res in results:
                if n_output == 1:
                    res = (res,)
                for out_ary, res_i in zip(out, res):
                    out_ary[idx] = np.asarray(res_i)[index]
        finally:
            if executor is not None:
                executor.shutdown()

        return out[0] if n_output == 1 else out

    _ufunc.__doc__ = (
        f"Batched version of ``{getattr(func, '__name__', 'func')}`` returning "
        f"{n_output} output(s)."
    )
    return _ufunc
