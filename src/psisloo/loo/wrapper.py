"""Base class for sampling wrappers used to refit models."""

import numpy as np

__all__ = ["SamplingWrapper"]


class SamplingWrapper:
    """Class wrapping sampling routines for its usage via psisloo functions.

    Using functions like :func:`psisloo.reloo` requires refitting the model
    without some observations. To let the refits work with any modeling
    framework, :func:`~psisloo.reloo` talks to the sampler through this class
    only. Subclasses must implement the four methods below.

    Parameters
    ----------
    model
        The model object used for sampling.
    data : DataTree or InferenceData, optional
        Results of the fit on the full dataset, used to compute PSIS-LOO-CV
        when no precomputed results are available.
    log_lik_var_name : str, optional
        Name of the log likelihood variable to use in `data`.
    sample_kwargs : dict, optional
        Sampling kwargs, available to :meth:`sample`.
    idata_kwargs : dict, optional
        Conversion kwargs, available to :meth:`get_inference_data`.

    Warnings
    --------
    :func:`~psisloo.reloo` may call the methods from several threads at once when
    ``max_workers > 1``, implementations should not share mutable state between refits.
    """

    def __init__(
        self, model, data=None, log_lik_var_name=None, sample_kwargs=None, idata_kwargs=None
    ):
        self.model = model
        self.data = data
        self.log_lik_var_name = log_lik_var_name
        self.sample_kwargs = {} if sample_kwargs is None else sample_kwargs
        self.idata_kwargs = {} if idata_kwargs is None else idata_kwargs

    def sel_observations(self, idx):
        """Get subsets of the data depending on the input index.

        Parameters
        ----------
        idx : int or dict
            Position of the observation to exclude, a dict of coordinate values for
            multidimensional observations.

        Returns
        -------
        modified_observed_data
            Data without the excluded observation, passed to :meth:`sample`.
        excluded_observed_data
            The excluded observation, passed to :meth:`log_likelihood__i`.
        """
        raise NotImplementedError("sel_observations method must be implemented")

    def sample(self, modified_observed_data):
        """Sample the model on `modified_observed_data` and return the fitted model."""
        raise NotImplementedError("sample method must be implemented")

    def get_inference_data(self, fitted_model):
        """Convert the fitted model to the object used by :meth:`log_likelihood__i`."""
        raise NotImplementedError("get_inference_data method must be implemented")

    def log_likelihood__i(self, excluded_obs, idata__i):
        """Get the log likelihood samples of the excluded observation from a refit.

        Returns
        -------
        array-like
            One log likelihood value per draw of the refit, any shape.
        """
        raise NotImplementedError("log_likelihood__i method must be implemented")

    def refit(self, idx):
        """Refit the model without observation `idx` and return its held-out log likelihood."""
        modified_observed_data, excluded_obs = self.sel_observations(idx)
        fitted_model = self.sample(modified_observed_data)
        idata__i = self.get_inference_data(fitted_model)
        return np.asarray(self.log_likelihood__i(excluded_obs, idata__i), dtype=float)

    def check_implemented_methods(self, methods):
        """Check that all methods listed are implemented.

        Returns
        -------
        list
            Names of the methods that are not implemented.
        """
        not_implemented = []
        for method in methods:
            if getattr(type(self), method) is getattr(SamplingWrapper, method):
                not_implemented.append(method)
        return not_implemented
