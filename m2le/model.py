# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

r"""Pixel-integrated Gaussian emission model and its log-likelihood

Summing the photons of a 2D window along one axis gives a 1D profile. For a
Gaussian point spread function, the expected number of photons in a bin
centered at `x` (in nm) is

.. math::
    E(x) = b L + I L \frac{\pi w^2}{2 k^2}
    \left[\operatorname{erf}\left(\frac{k (x - x_0 + a/2)}{w}\right) -
    \operatorname{erf}\left(\frac{k (x - x_0 - a/2)}{w}\right)\right]

where :math:`x_0` is the emitter position, :math:`I` the intensity,
:math:`b` the background per pixel, :math:`w` the dimensionless width,
:math:`L` the number of pixels summed per bin, :math:`k` the wavenumber and
:math:`a` the light sensitive length of a pixel.

The width is related to the standard deviation :math:`\sigma` (in nm) of the
point spread function by :math:`w = \sqrt{2} k \sigma`.

Assuming Poissonian photon counts :math:`s`, the log-likelihood (up to a
constant) is :math:`\sum s \ln E - E`.

Parameters are passed as sequences ``(position, intensity, background,
width)``.
"""
import math

import numpy as np
from scipy.special import erf


_two_over_sqrt_pi = 2 / math.sqrt(math.pi)


def _terms(positions, params, length, wavenumber, usable_size):
    pos, inten, bg, w = params
    c = length * math.pi / (2 * wavenumber**2)
    u1 = wavenumber * (positions - pos + usable_size / 2) / w
    u2 = wavenumber * (positions - pos - usable_size / 2) / w
    return c, u1, u2


def partial_expected(positions, params, length, wavenumber, usable_size):
    """Expected photon counts for unit intensity and no background

    Parameters
    ----------
    positions : numpy.ndarray
        Bin centers in nm
    params : sequence of float
        Model parameters. Only position and width are used.
    length : int
        Number of pixels summed per bin
    wavenumber : float
        Wavenumber in 1/nm
    usable_size : float
        Light sensitive length of a pixel in nm

    Returns
    -------
    numpy.ndarray
        Expected counts per bin
    """
    c, u1, u2 = _terms(positions, params, length, wavenumber, usable_size)
    return c * params[3]**2 * (erf(u1) - erf(u2))


def expected(positions, params, length, wavenumber, usable_size):
    """Expected photon counts

    Parameters
    ----------
    positions : numpy.ndarray
        Bin centers in nm
    params : sequence of float
        Model parameters
    length : int
        Number of pixels summed per bin
    wavenumber : float
        Wavenumber in 1/nm
    usable_size : float
        Light sensitive length of a pixel in nm

    Returns
    -------
    numpy.ndarray
        Expected counts per bin
    """
    return (params[2] * length + params[1] *
            partial_expected(positions, params, length, wavenumber,
                             usable_size))


def derivatives(positions, params, length, wavenumber, usable_size):
    """Expected photon counts and their derivatives

    Parameters
    ----------
    positions : numpy.ndarray
        Bin centers in nm
    params : sequence of float
        Model parameters
    length : int
        Number of pixels summed per bin
    wavenumber : float
        Wavenumber in 1/nm
    usable_size : float
        Light sensitive length of a pixel in nm

    Returns
    -------
    e : numpy.ndarray
        Expected counts per bin
    d1, d2 : numpy.ndarray, shape(4, n)
        First and second derivatives of `e` with respect to each parameter
        (non-mixed)
    """
    pos, inten, bg, w = params
    c, u1, u2 = _terms(positions, params, length, wavenumber, usable_size)
    g = erf(u1) - erf(u2)
    e1 = np.exp(-u1 * u1)
    e2 = np.exp(-u2 * u2)
    ue = u1 * e1 - u2 * e2
    u3e = u1**3 * e1 - u2**3 * e2
    ic = inten * c

    e = bg * length + ic * w * w * g

    d1 = np.empty((4, len(positions)))
    d1[0] = -ic * w * wavenumber * _two_over_sqrt_pi * (e1 - e2)
    d1[1] = c * w * w * g
    d1[2] = length
    d1[3] = ic * (2 * w * g - w * _two_over_sqrt_pi * ue)

    d2 = np.zeros((4, len(positions)))
    d2[0] = -ic * 2 * wavenumber**2 * _two_over_sqrt_pi * ue
    d2[3] = ic * (2 * g - 2 * _two_over_sqrt_pi * ue -
                  2 * _two_over_sqrt_pi * u3e)
    return e, d1, d2


def log_likelihood(signal, positions, params, length, wavenumber,
                   usable_size):
    """Poissonian log-likelihood of the model

    Parameters
    ----------
    signal : numpy.ndarray
        Measured photon counts per bin
    positions : numpy.ndarray
        Bin centers in nm
    params : sequence of float
        Model parameters
    length : int
        Number of pixels summed per bin
    wavenumber : float
        Wavenumber in 1/nm
    usable_size : float
        Light sensitive length of a pixel in nm

    Returns
    -------
    float
        Log-likelihood. `-inf` if the model predicts non-positive counts.
    """
    e = expected(positions, params, length, wavenumber, usable_size)
    if not np.all(e > 0):
        return -math.inf
    return float(np.sum(signal * np.log(e) - e))


def newton_step(signal, positions, params, length, wavenumber, usable_size):
    """Decoupled Newton-Raphson step maximizing the log-likelihood

    Each parameter is treated independently, i.e. the Hessian is
    approximated by its diagonal.

    Parameters
    ----------
    signal : numpy.ndarray
        Measured photon counts per bin
    positions : numpy.ndarray
        Bin centers in nm
    params : sequence of float
        Current model parameters
    length : int
        Number of pixels summed per bin
    wavenumber : float
        Wavenumber in 1/nm
    usable_size : float
        Light sensitive length of a pixel in nm

    Returns
    -------
    numpy.ndarray
        Step `delta`. The updated parameters are ``params - delta``.
    """
    e, d1, d2 = derivatives(positions, params, length, wavenumber,
                            usable_size)
    r = signal / e
    first = np.sum((r - 1) * d1, axis=1)
    second = np.sum((r - 1) * d2 - r / e * d1 * d1, axis=1)
    return first / second
