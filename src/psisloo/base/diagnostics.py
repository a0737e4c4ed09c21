"""Pareto smoothing and effective sample size functions."""

import logging

import numpy as np
from scipy.fft import irfft, next_fast_len, rfft
from scipy.special import logsumexp

_log = logging.getLogger(__name__)

MIN_TAIL_DRAWS = 5


class _DiagnosticsBase:
    """Class with numpy+scipy only diagnostic related functions."""

    @staticmethod
    def _autocov(ary):
        """Autocovariance for every lag along the last axis, computed with FFT."""
        n_draws = ary.shape[-1]
        centered = ary - ary.mean(axis=-1, keepdims=True)
        n_fft = next_fast_len(2 * n_draws)
        freqs = rfft(centered, n=n_fft, axis=-1)
        return irfft(freqs * np.conjugate(freqs), n=n_fft, axis=-1)[..., :n_draws] / n_draws

    def _ess_mean(self, ary, relative=False):
        """Compute the effective sample size for the mean of a ``(chain, draw)`` array.

        Chains are split in half before estimating the autocorrelation, which is
        truncated with Geyer's initial monotone sequence.
        """
        ary = np.atleast_2d(np.asarray(ary, dtype=float))
        if np.isnan(ary).any() or ary.shape[-1] < 4:
            _log.warning(
                "Can't compute the effective sample size of an array with shape %s, "
                "at least 4 draws without NaN values are needed.",
                ary.shape,
            )
            return np.nan

        half = ary.shape[-1] // 2
        ary = np.vstack((ary[:, :half], ary[:, -half:]))
        n_chains, n_draws = ary.shape
        n_samples = n_chains * n_draws
        if np.ptp(ary) < np.finfo(float).resolution:
            return 1.0 if relative else float(n_samples)

        acov = self._autocov(ary)
        within_var = acov[:, 0].mean() * n_draws / (n_draws - 1)
        var_plus = within_var * (n_draws - 1) / n_draws
        if n_chains > 1:
            var_plus += np.var(ary.mean(axis=1), ddof=1)

        rho = 1 - (within_var - acov.mean(axis=0)) / var_plus
        rho[0] = 1
        n_pairs = n_draws // 2
        pair_sums = rho[: 2 * n_pairs].reshape(n_pairs, 2).sum(axis=1)
        (non_positive,) = np.nonzero(pair_sums <= 0)
        if non_positive.size:
            pair_sums = pair_sums[: non_positive[0]]
        pair_sums = np.minimum.accumulate(pair_sums)

        tau = max(-1 + 2 * pair_sums.sum(), 1 / np.log10(n_samples))
        return (1 if relative else n_samples) / tau

    @staticmethod
    def _psis_tail_size(n_draws, r_eff=1):
        """Number of draws in the right tail used by PSIS."""
        return int(np.ceil(min(0.2 * n_draws, 3 * np.sqrt(n_draws / r_eff))))

    def _psislw(self, ary, r_eff=1):
        """Compute Pareto smoothed log weights from the log ratios of one observation.

        Parameters
        ----------
        ary : np.ndarray
            Log importance ratios, any shape, all of them are used as draws.
        r_eff : float, default 1
            Relative efficiency of the draws.

        Returns
        -------
        log_weights : np.ndarray
            Same shape as `ary`, normalized so that the weights sum to one.
        khat : float
            Estimated Pareto shape. ``nan`` for non finite inputs, ``inf`` when the
            tail is too short to be fitted.
        """
        ary = np.asarray(ary, dtype=float)
        shape = ary.shape
        log_weights = ary.ravel().copy()
        n_draws = log_weights.size

        if not np.all(np.isfinite(log_weights)):
            return np.full(shape, np.nan), np.nan

        # improve numerical accuracy
        log_weights -= np.max(log_weights)
        khat = np.inf

        if n_draws >= 2 * MIN_TAIL_DRAWS:
            n_draws_tail = self._psis_tail_size(n_draws, r_eff)
            cutoff_min = np.log(np.finfo(float).tiny)
            ordered = np.argsort(log_weights)
            # largest value smaller than the tail values
            cutoff = max(log_weights[ordered[-n_draws_tail - 1]], cutoff_min)
            (tail_ids,) = np.nonzero(log_weights > cutoff)
            n_tail = tail_ids.size

            if n_tail >= MIN_TAIL_DRAWS:
                tail_ids = tail_ids[np.argsort(log_weights[tail_ids])]
                exp_cutoff = np.exp(cutoff)
                khat, sigma = self._gpdfit(np.exp(log_weights[tail_ids]) - exp_cutoff)

                if np.isfinite(khat):
                    probs = np.arange(0.5, n_tail) / n_tail
                    smoothed = self._gpinv(probs, khat, sigma, exp_cutoff)
                    log_weights[tail_ids] = np.log(smoothed)
                    # truncate smoothed values to the largest raw weight
                    log_weights[log_weights > 0] = 0
                else:
                    khat = np.inf

        log_weights -= logsumexp(log_weights)
        return log_weights.reshape(shape), khat

    @staticmethod
    def _gpdfit(ary):
        """Estimate the parameters for the Generalized Pareto Distribution (GPD).

        Empirical Bayes estimate of the shape and scale of the generalized Pareto
        distribution, see Zhang and Stephens, 2009 (https://doi.org/10.1198/tech.2009.08017).
        A weakly informative prior centered at 0.5 stabilizes the shape estimate for
        small tails.

        Parameters
        ----------
        ary : np.ndarray
            Sorted 1D array of positive excesses over the cutoff.

        Returns
        -------
        kappa : float
            Shape parameter.
        sigma : float
            Scale parameter.
        """
        prior_weight = 10
        n_excess = ary.size
        n_grid = 30 + int(np.sqrt(n_excess))
        first_quartile = ary[int(n_excess / 4 + 0.5) - 1]

        theta = 1 / ary[-1] + (1 - np.sqrt(n_grid / (np.arange(1, n_grid + 1) - 0.5))) / (
            3 * first_quartile
        )
        k_grid = np.log1p(-theta[:, None] * ary).mean(axis=1)
        profile_log_lik = n_excess * (np.log(-theta / k_grid) - k_grid - 1)
        weights = np.exp(profile_log_lik - logsumexp(profile_log_lik))
        # negligible weights
        weights[weights < 10 * np.finfo(float).eps] = 0
        theta_post = np.sum(theta * weights) / np.sum(weights)

        kappa = np.log1p(-theta_post * ary).mean()
        sigma = -kappa / theta_post
        kappa = (n_excess * kappa + prior_weight * 0.5) / (n_excess + prior_weight)
        return kappa, sigma

    @staticmethod
    def _gpinv(probs, kappa, sigma, mu=0):
        """Quantile function for generalized pareto distribution."""
        if sigma <= 0:
            return np.full_like(probs, np.nan)
        if kappa == 0:
            return mu - sigma * np.log1p(-probs)
        return mu + sigma * np.expm1(-kappa * np.log1p(-probs)) / kappa
