# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Image moments of small regions around candidates

All functions take noise-subtracted photon counts `signal` of an image region
(indexed (row, column)) together with the :py:class:`data.Window` describing
the region's location in the frame. Pixel `i` spans ``[i, i + 1)``, thus
its center is at ``i + 0.5``.
"""
import math

import numpy as np


def subtract_noise(photons, noise):
    """Subtract noise and clip at 0

    Parameters
    ----------
    photons : numpy.ndarray
        Photon counts
    noise : float
        Noise level

    Returns
    -------
    numpy.ndarray
        ``max(photons - noise, 0)``
    """
    return np.clip(photons - noise, 0., None)


def _pixel_centers(win):
    return (np.arange(win.left, win.right) + 0.5,
            np.arange(win.top, win.bottom) + 0.5)


def centroid(signal, win):
    """Intensity weighted center of a region

    Parameters
    ----------
    signal : numpy.ndarray
        Noise-subtracted photon counts
    win : data.Window
        Location of `signal` in the frame

    Returns
    -------
    numpy.ndarray
        x and y coordinates of the centroid. NaN if the signal is 0
        everywhere.
    """
    xs, ys = _pixel_centers(win)
    total = signal.sum()
    if total <= 0:
        return np.array([np.nan, np.nan])
    return np.array([np.sum(signal * xs[np.newaxis, :]),
                     np.sum(signal * ys[:, np.newaxis])]) / total


def second_moments(signal, win, center):
    """Central second moments of a region

    Parameters
    ----------
    signal : numpy.ndarray
        Noise-subtracted photon counts
    win : data.Window
        Location of `signal` in the frame
    center : array-like
        Centroid as returned by :py:func:`centroid`

    Returns
    -------
    numpy.ndarray
        The moments ``[m_xx, m_yy, m_xy]``, i.e. the entries of the
        covariance matrix
    """
    xs, ys = _pixel_centers(win)
    total = signal.sum()
    if total <= 0:
        return np.full(3, np.nan)
    dx = xs[np.newaxis, :] - center[0]
    dy = ys[:, np.newaxis] - center[1]
    return np.array([np.sum(signal * dx * dx),
                     np.sum(signal * dy * dy),
                     np.sum(signal * dx * dy)]) / total


def eigenvalues(moments):
    """Eigenvalues of the covariance matrix

    Parameters
    ----------
    moments : array-like
        ``[m_xx, m_yy, m_xy]`` as returned by :py:func:`second_moments`

    Returns
    -------
    tuple of float
        Larger and smaller eigenvalue
    """
    m_xx, m_yy, m_xy = moments
    first = m_xx + m_yy
    diff = m_xx - m_yy
    last = math.sqrt(4 * m_xy * m_xy + diff * diff)
    return (first + last) / 2, (first - last) / 2


def eccentricity(l1, l2):
    """Eccentricity from covariance eigenvalues

    Parameters
    ----------
    l1, l2 : float
        Larger and smaller eigenvalue

    Returns
    -------
    float
        :math:`\\sqrt{1 - l_2 / l_1}`. NaN if `l1` is not positive or any
        eigenvalue is NaN.
    """
    if not l1 > 0 or math.isnan(l2):
        return math.nan
    return math.sqrt(max(1 - l2 / l1, 0.))


def eccentricity_threshold(photons, acceptance):
    """Photon count dependent upper limit for the eccentricity

    This is an empirical fit to eccentricity distributions of circular
    features with shot noise. The more photons, the lower the threshold.

    Parameters
    ----------
    photons : float
        Number of (noise-subtracted) photons of the feature
    acceptance : float
        Fraction of circular features to accept (between 0 and 1)

    Returns
    -------
    float
        Eccentricity threshold. Infinite if there are too few photons for
        the curve to be defined.
    """
    acc = 100 * acceptance
    x0h = acc - 89.952
    x0 = 61172. / (x0h * x0h + 1307.9) - 97.515
    y0 = 2.1759e-6 * acc**2.2837 + 0.082876
    ah = acc - 120.7
    a = 992.92 / (ah * ah - 35.069) + 2.9048
    if photons <= x0:
        return math.inf
    return a / math.sqrt(photons - x0) + y0


_subpixel_offsets = np.arange(10) / 10 + 0.05


def third_moment_kernels(win, center, alpha):
    """Hermite weights of the third moments, averaged over each pixel

    Each pixel is sampled at 10 x 10 subpixel positions. At each sample,
    the coordinates relative to `center` are scaled by `alpha` and the
    third order Hermite-like polynomials are multiplied by a Gaussian mask.

    Parameters
    ----------
    win : data.Window
        Region
    center : array-like
        x and y coordinates of the feature center
    alpha : float
        Inverse length scale of the mask in 1/pixel

    Returns
    -------
    numpy.ndarray, shape(4, height, width)
        Weight of each pixel for each of the four moments
    """
    x0 = (np.arange(win.left, win.right)[:, np.newaxis] + _subpixel_offsets -
          center[0]) * alpha
    y0 = (np.arange(win.top, win.bottom)[:, np.newaxis] + _subpixel_offsets -
          center[1]) * alpha
    # axes: row, column, row sample, column sample
    x0 = x0[np.newaxis, :, np.newaxis, :]
    y0 = y0[:, np.newaxis, :, np.newaxis]

    mask = np.exp(-(x0 * x0 + y0 * y0))
    hx = x0 * (8 * x0 * x0 - 12)
    hy = y0 * (8 * y0 * y0 - 12)
    cx = 4 * x0 * x0 - 2
    cy = 4 * y0 * y0 - 2

    kernels = (hx + 2 * x0 * cy,
               hy + 2 * y0 * cx,
               6 * x0 * cy - hx,
               hy - 6 * y0 * cx)
    return np.array([(k * mask).mean(axis=(2, 3)) for k in kernels])


def third_moments(signal, kernels):
    """Third moments of a region

    Parameters
    ----------
    signal : numpy.ndarray
        Noise-subtracted photon counts
    kernels : numpy.ndarray
        Weights as returned by :py:func:`third_moment_kernels`

    Returns
    -------
    numpy.ndarray
        The four moments. NaN if the signal is 0 everywhere.
    """
    total = signal.sum()
    if total <= 0:
        return np.full(4, np.nan)
    return np.sum(kernels * signal[np.newaxis, ...], axis=(1, 2)) / total


def third_moment_errors(photons, signal, kernels):
    """Shot noise standard errors of the third moments

    Assuming Poissonian pixel values, the variance of each moment is the
    sum of the squared weights times the photon counts divided by the square
    of the total signal.

    Parameters
    ----------
    photons : numpy.ndarray
        Photon counts before noise subtraction
    signal : numpy.ndarray
        Noise-subtracted photon counts
    kernels : numpy.ndarray
        Weights as returned by :py:func:`third_moment_kernels`

    Returns
    -------
    numpy.ndarray
        Standard errors of the four moments. NaN if the signal is 0
        everywhere.
    """
    total = signal.sum()
    if total <= 0:
        return np.full(4, np.nan)
    var = np.clip(photons, 0., None)[np.newaxis, ...] * kernels * kernels
    return np.sqrt(var.sum(axis=(1, 2))) / total
