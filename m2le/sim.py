# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Simulation of fluorescence microscopy images

Emitters are modeled as Gaussian point spread functions integrated over the
light sensitive area of each pixel. This is the same model that is used for
localization (see :py:mod:`model`).
"""
import numpy as np
from scipy.special import erf


def pixel_integrals(n, center, sigma, usable_pixel=0.9):
    """Fraction of a 1D Gaussian falling onto each pixel

    Pixel `i` spans ``[i, i + 1)``, its light sensitive part is centered at
    ``i + 0.5`` and has length `usable_pixel`.

    Parameters
    ----------
    n : int
        Number of pixels
    center : float
        Center of the Gaussian
    sigma : float
        Standard deviation of the Gaussian in pixels
    usable_pixel : float, optional
        Light sensitive fraction of a pixel. Defaults to 0.9.

    Returns
    -------
    numpy.ndarray
        Integral of the normalized Gaussian over each pixel
    """
    c = np.arange(n) + 0.5 - center
    s = np.sqrt(2) * sigma
    return 0.5 * (erf((c + usable_pixel / 2) / s) -
                  erf((c - usable_pixel / 2) / s))


def simulate_spots(shape, centers, photons, sigmas, usable_pixel=0.9):
    """Simulate an image from multiple pixel-integrated Gaussian PSFs

    Parameters
    ----------
    shape : tuple of int, len=2
        Shape of the output image. First entry is the width, second is the
        height.
    centers : array-like, shape=(n, 2)
        x and y coordinates of the PSF centers in pixels
    photons : array-like
        Total number of photons of each PSF (ignoring the insensitive part
        of the pixels). Either a scalar that is used for all PSFs or an 1D
        array.
    sigmas : array-like
        If it is one number, this will be used as sigma for all PSFs. An
        array of two numbers will be interpreted as sigmas in x and y
        directions for all PSFs. A 2D array of shape (n, 2) gives sigmas in
        x and y directions for each PSF.
    usable_pixel : float, optional
        Light sensitive fraction of a pixel. Defaults to 0.9.

    Returns
    -------
    numpy.ndarray
        Simulated image, noiseless and without background
    """
    centers = np.atleast_2d(np.asarray(centers, dtype=float))
    photons = np.broadcast_to(photons, len(centers))
    sigmas = np.broadcast_to(np.asarray(sigmas, dtype=float)[..., np.newaxis]
                             if np.ndim(sigmas) == 0 else sigmas,
                             centers.shape)

    width, height = shape
    ret = np.zeros((height, width))
    for (x, y), p, (sx, sy) in zip(centers, photons, sigmas):
        px = pixel_integrals(width, x, sx, usable_pixel)
        py = pixel_integrals(height, y, sy, usable_pixel)
        ret += p * py[:, np.newaxis] * px[np.newaxis, :]
    return ret


def sigma_to_width(sigma, pixel_size, wavenumber):
    """Convert a PSF standard deviation to the model's dimensionless width

    Parameters
    ----------
    sigma : float
        Standard deviation in pixels
    pixel_size : float
        Pixel size in nm
    wavenumber : float
        Wavenumber in 1/nm

    Returns
    -------
    float
        :math:`\\sqrt{2} k \\sigma`
    """
    return np.sqrt(2) * wavenumber * sigma * pixel_size
