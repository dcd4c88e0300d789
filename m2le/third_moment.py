# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Reject localizations with asymmetric intensity distributions

Two emitters close to each other may be localized as a single one. Such
features are not point-symmetric around the fitted position, which shows in
their third moments. Four Gaussian-weighted third moments are computed
around the fitted position and normalized by their shot noise standard
errors. For a single emitter, the sum of squares of the normalized moments
follows approximately a :math:`\\chi^2` distribution with four degrees of
freedom, which gives the acceptance threshold.

The moments are combined into two rotation invariants, `third_sum` (from the
first pair of moments) and `third_diff` (from the second pair).
"""
import math

import numpy as np
from scipy import stats

from . import moments
from .data import Window, stages
from .noise import local_noise


_alpha_factor = 2 * math.sqrt(2) * math.pi


def invariants(photons, win, center, alpha):
    """Normalized third moment invariants of a region

    Parameters
    ----------
    photons : numpy.ndarray
        Photon counts of the region
    win : data.Window
        Location of the region in the frame
    center : array-like
        x and y coordinates of the feature center in pixels
    alpha : float
        Inverse length scale of the Gaussian mask in 1/pixel

    Returns
    -------
    third_sum, third_diff : float
        Invariants. NaN if the noise-subtracted signal vanishes.
    """
    signal = moments.subtract_noise(photons, local_noise(photons))
    kernels = moments.third_moment_kernels(win, center, alpha)
    with np.errstate(invalid="ignore", divide="ignore"):
        m = moments.third_moments(signal, kernels)
        err = moments.third_moment_errors(photons, signal, kernels)
        z = m / err
    if not np.all(np.isfinite(z)):
        return math.nan, math.nan
    return float(np.hypot(z[0], z[1])), float(np.hypot(z[2], z[3]))


def threshold(acceptance):
    """Upper limit for ``third_sum**2 + third_diff**2``

    Parameters
    ----------
    acceptance : float
        Fraction of symmetric features to accept (between 0 and 1)

    Returns
    -------
    float
        Threshold
    """
    return float(stats.chi2.ppf(acceptance, 4))


class ThirdMomentRejector(object):
    """Annotate candidates with third moments and reject asymmetric ones

    If disabled, the invariants are still computed, but no candidate is
    rejected.
    """
    stage = stages.third_moment

    def __init__(self, wavelength, acceptance=0.95, radius=3, enabled=False):
        """Parameters
        ----------
        wavelength : float
            Emission wavelength in pixels
        acceptance : float, optional
            Fraction of symmetric features that pass. Defaults to 0.95.
        radius : int, optional
            The region used for computations extends `radius` pixels from
            the candidate pixel in each direction. Defaults to 3.
        enabled : bool, optional
            Whether to reject candidates. Defaults to `False`.
        """
        self.wavelength = wavelength
        self.acceptance = acceptance
        self.radius = radius
        self.enabled = enabled
        self._threshold = threshold(acceptance)

    @classmethod
    def from_settings(cls, settings):
        return cls(settings.wavelength / settings.pixel_size,
                   settings.third_moment_acceptance,
                   settings.fit_radius,
                   settings.third_moment_enabled)

    def __call__(self, stack, candidate):
        """Process a localized candidate

        Sets the `third_sum` and `third_diff` attributes and records a
        verdict.

        Parameters
        ----------
        stack : frames.FrameStack
            Image data
        candidate : data.Candidate
            Candidate to process. The fitted position and widths are used.

        Returns
        -------
        bool
            Whether the candidate was kept
        """
        win = Window.around(candidate.x, candidate.y, self.radius,
                            stack.shape)
        width = 0.5 * (candidate.width_x + candidate.width_y)
        alpha = _alpha_factor / (self.wavelength * width)
        s, d = invariants(stack.window(candidate.frame, win), win,
                          (candidate.x_est, candidate.y_est), alpha)
        candidate.third_sum = s
        candidate.third_diff = d

        if not self.enabled:
            candidate.keep(self.stage, "disabled")
        elif math.isnan(s):
            candidate.reject(self.stage, "degenerate")
        elif s * s + d * d >= self._threshold:
            candidate.reject(self.stage, "asymmetric")
        else:
            candidate.keep(self.stage)
        return not candidate.rejected
