# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Reject candidates whose shape is too elongated

The shape of the feature around a candidate pixel is described by the
eigenvalues :math:`l_1 \\geq l_2` of the covariance matrix of the
noise-subtracted intensity distribution. The eccentricity
:math:`\\sqrt{1 - l_2 / l_1}` is 0 for circular features and approaches 1
for elongated ones. Features of single emitters are expected to be circular,
but due to shot noise the eccentricity is not exactly 0. The acceptance
threshold therefore depends on the number of photons.
"""
import math

import numpy as np

from . import moments
from .data import Window, stages
from .noise import local_noise


def shape(photons, win):
    """Compute shape properties of a region

    Parameters
    ----------
    photons : numpy.ndarray
        Photon counts of the region
    win : data.Window
        Location of the region in the frame

    Returns
    -------
    ecc : float
        Eccentricity. NaN for degenerate regions.
    major, minor : float
        Square roots of the covariance eigenvalues in pixels
    total : float
        Number of noise-subtracted photons in the region
    """
    signal = moments.subtract_noise(photons, local_noise(photons))
    with np.errstate(invalid="ignore", divide="ignore"):
        c = moments.centroid(signal, win)
        l1, l2 = moments.eigenvalues(moments.second_moments(signal, win, c))
    ecc = moments.eccentricity(l1, l2)
    major = math.sqrt(l1) if l1 >= 0 else math.nan
    minor = math.sqrt(max(l2, 0.)) if not math.isnan(l2) else math.nan
    return ecc, major, minor, float(signal.sum())


class EccentricityRejector(object):
    """Annotate candidates with shape properties and reject elongated ones

    If disabled, shape properties are still computed, but no candidate is
    rejected.
    """
    stage = stages.eccentricity

    def __init__(self, acceptance=0.6, radius=3, enabled=True):
        """Parameters
        ----------
        acceptance : float, optional
            Fraction of circular features that pass. Defaults to 0.6.
        radius : int, optional
            The region used for computations extends `radius` pixels from
            the candidate pixel in each direction. Defaults to 3.
        enabled : bool, optional
            Whether to reject candidates. Defaults to `True`.
        """
        self.acceptance = acceptance
        self.radius = radius
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings):
        return cls(settings.eccentricity_acceptance,
                   settings.eccentricity_radius,
                   settings.eccentricity_enabled)

    def __call__(self, stack, candidate):
        """Process a candidate

        Sets the `eccentricity`, `major_axis`, and `minor_axis` attributes and
        records a verdict.

        Parameters
        ----------
        stack : frames.FrameStack
            Image data
        candidate : data.Candidate
            Candidate to process

        Returns
        -------
        bool
            Whether the candidate was kept
        """
        win = Window.around(candidate.x, candidate.y, self.radius,
                            stack.shape)
        ecc, major, minor, total = shape(
            stack.window(candidate.frame, win), win)
        candidate.eccentricity = ecc
        candidate.major_axis = major
        candidate.minor_axis = minor

        if not self.enabled:
            candidate.keep(self.stage, "disabled")
        elif math.isnan(ecc):
            candidate.reject(self.stage, "degenerate")
        elif ecc >= moments.eccentricity_threshold(total, self.acceptance):
            candidate.reject(self.stage, "eccentric")
        else:
            candidate.keep(self.stage)
        return not candidate.rejected
