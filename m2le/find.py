# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Find candidate pixels which may contain an emitter"""
import numpy as np

from .data import Candidate


def find_pixels(photons, noise, snr_cutoff, margin=3):
    """Find pixels that are significantly brighter than the noise

    Parameters
    ----------
    photons : numpy.ndarray
        Image data in photons
    noise : noise.NoiseMap
        Noise estimate of the image
    snr_cutoff : float
        A pixel is selected if its value is greater than `snr_cutoff` times
        the noise estimate.
    margin : int, optional
        Ignore pixels closer than this to the image border. Defaults to 3.

    Returns
    -------
    numpy.ndarray, shape(n, 2)
        Column and row indices of the selected pixels, ordered by row
    """
    photons = np.asarray(photons)
    h, w = photons.shape
    if h <= 2 * margin or w <= 2 * margin:
        return np.empty((0, 2), dtype=int)

    mask = photons > noise.image(photons.shape) * snr_cutoff
    inner = np.zeros_like(mask)
    inner[margin:h-margin, margin:w-margin] = True
    mask &= inner

    rows, cols = np.nonzero(mask)
    return np.column_stack((cols, rows))


def find(photons, noise, snr_cutoff, frame, margin=3):
    """Create candidates for bright pixels

    This is a wrapper around :py:func:`find_pixels` creating
    :py:class:`data.Candidate` instances.

    Parameters
    ----------
    photons : numpy.ndarray
        Image data in photons
    noise : noise.NoiseMap
        Noise estimate of the image
    snr_cutoff : float
        A pixel is selected if its value is greater than `snr_cutoff` times
        the noise estimate.
    frame : int
        Frame number
    margin : int, optional
        Ignore pixels closer than this to the image border. Defaults to 3.

    Returns
    -------
    list of data.Candidate
        One candidate per selected pixel
    """
    return [Candidate(x, y, frame, float(photons[y, x]), noise.at(x, y))
            for x, y in find_pixels(photons, noise, snr_cutoff, margin)]
