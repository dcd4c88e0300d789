# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Maximum likelihood localization

The photons in a window around a candidate pixel are summed along the rows
and along the columns. To each of the two resulting 1D profiles, the
pixel-integrated Gaussian model (see :py:mod:`model`) is fitted by
maximizing the likelihood. Since a symmetric 2D Gaussian is separable, this
gives the x and y coordinates of the emitter.
"""
import collections
import math

import numpy as np

from . import model
from .data import Window, stages


_PTuple = collections.namedtuple(
    "ParamTuple", ["position", "intensity", "background", "width"])
_PTuple.__new__.__doc__ = ""


class ModelParameters(_PTuple):
    """Named tuple of the model parameters for one axis

    Attributes
    ----------
    position : float
        Emitter position in nm relative to the window's start
    intensity : float
        Intensity coefficient
    background : float
        Background in photons per pixel
    width : float
        Dimensionless width
    """
    def step(self, delta, coefficient=1.):
        """Parameters after a (scaled) Newton step

        Parameters
        ----------
        delta : array-like
            Step as returned by :py:func:`model.newton_step`
        coefficient : float, optional
            Scale factor of the step. Defaults to 1.

        Returns
        -------
        ModelParameters
            ``self - coefficient * delta``
        """
        return type(self)(*(np.array(self) - coefficient * np.asarray(delta)))

    def is_valid(self):
        """Check whether all parameters are finite and non-negative"""
        return (all(math.isfinite(p) for p in self) and
                self.intensity >= 0 and self.background >= 0 and
                self.width >= 0)


class SignalProfile(object):
    """1D photon count profile of a window

    Attributes
    ----------
    values : numpy.ndarray
        Summed photon counts
    positions : numpy.ndarray
        Bin centers in nm, ``(i + 0.5) * pixel_size``
    length : int
        Number of pixels summed per bin
    """
    def __init__(self, values, length, pixel_size):
        """Parameters
        ----------
        values : array-like
            Summed photon counts
        length : int
            Number of pixels summed per bin
        pixel_size : float
            Pixel size in nm
        """
        self.values = np.asarray(values, dtype=float)
        self.length = length
        self.pixel_size = pixel_size
        self.positions = (np.arange(len(self.values)) + 0.5) * pixel_size

    @classmethod
    def from_window(cls, photons, axis, pixel_size):
        """Create profiles by summing a 2D window

        Parameters
        ----------
        photons : numpy.ndarray
            Photon counts, indexed (row, column)
        axis : {"x", "y"}
            "x" sums over rows (varying with the column), "y" sums over
            columns.
        pixel_size : float
            Pixel size in nm

        Returns
        -------
        SignalProfile
            Profile along `axis`
        """
        if axis == "x":
            return cls(photons.sum(axis=0), photons.shape[0], pixel_size)
        if axis == "y":
            return cls(photons.sum(axis=1), photons.shape[1], pixel_size)
        raise ValueError("`axis` has to be \"x\" or \"y\".")

    def __len__(self):
        return len(self.values)

    @property
    def extent(self):
        """Physical length of the profile in nm"""
        return len(self.values) * self.pixel_size


class AxisFitter(object):
    """Iterative maximum likelihood fit of a single profile

    Each call to :py:meth:`iterate` does one damped Newton-Raphson step.
    """
    max_halvings = 10

    def __init__(self, profile, params, wavenumber, usable_size,
                 background_range, epsilons):
        """Parameters
        ----------
        profile : SignalProfile
            Data to fit
        params : ModelParameters
            Initial guess
        wavenumber : float
            Wavenumber in 1/nm
        usable_size : float
            Light sensitive length of a pixel in nm
        background_range : tuple of float
            Fitted background is clamped to this range
        epsilons : tuple of float
            Position, relative intensity, and width change below which
            fitting stops
        """
        self.profile = profile
        self.params = params
        self.wavenumber = wavenumber
        self.usable_size = usable_size
        self.background_range = background_range
        self.epsilons = epsilons
        self.done = False
        self.likelihood = self._log_likelihood(params)

    def _log_likelihood(self, params):
        with np.errstate(all="ignore"):
            return model.log_likelihood(
                self.profile.values, self.profile.positions, params,
                self.profile.length, self.wavenumber, self.usable_size)

    def _clamp(self, params):
        lo, hi = self.background_range
        if params.background < lo:
            return params._replace(background=lo)
        if params.background > hi:
            return params._replace(background=hi)
        return params

    def iterate(self):
        """Do a single fitting iteration

        Computes the Newton step, then tries the full step and successively
        halved steps until the likelihood increases. The last trial is
        used even if it did not increase the likelihood.

        If the step is smaller than the epsilons, the fit is considered done
        and the parameters are not updated.

        Returns
        -------
        bool
            Whether the fit is done
        """
        with np.errstate(all="ignore"):
            delta = model.newton_step(
                self.profile.values, self.profile.positions, self.params,
                self.profile.length, self.wavenumber, self.usable_size)

        coeff = 1.
        for _ in range(self.max_halvings):
            new = self._clamp(self.params.step(delta, coeff))
            ll = self._log_likelihood(new)
            if ll > self.likelihood:
                self.likelihood = ll
                break
            coeff /= 2

        old_i = self.params.intensity
        with np.errstate(all="ignore"):
            int_change = abs(2 * (old_i - new.intensity) /
                             (old_i + new.intensity))
        pos_eps, int_eps, w_eps = self.epsilons
        if (abs(delta[0]) < pos_eps or int_change < int_eps or
                abs(delta[3]) < w_eps):
            self.done = True
        else:
            self.params = new
        return self.done


def initial_guess(profile, width, wavenumber, usable_size):
    """Initial parameters for fitting a profile

    Parameters
    ----------
    profile : SignalProfile
        Data
    width : float
        Initial width
    wavenumber : float
        Wavenumber in 1/nm
    usable_size : float
        Light sensitive length of a pixel in nm

    Returns
    -------
    ModelParameters
        The background is the profile minimum per pixel, the position is the
        background-subtracted centroid, and the intensity is chosen such that
        the model's amplitude matches the profile's.
    """
    v = profile.values
    bg = v.min() / profile.length
    s = np.clip(v - bg * profile.length, 0., None)
    with np.errstate(all="ignore"):
        pos = np.sum(s * profile.positions) / s.sum()
        unit = model.partial_expected(profile.positions,
                                      (pos, 1., 0., width), profile.length,
                                      wavenumber, usable_size)
        intensity = (v.max() - v.min()) / unit.max()
    return ModelParameters(float(pos), float(intensity), float(bg),
                           float(width))


def fit_profiles(profiles, guesses, wavenumber, usable_size,
                 background_range, epsilons, max_iterations=50):
    """Fit several profiles simultaneously

    Profiles are fitted independently. Iteration stops as soon as all fits
    are done or `max_iterations` is reached.

    Parameters
    ----------
    profiles : sequence of SignalProfile
        Data
    guesses : sequence of ModelParameters
        Initial parameters, one per profile
    wavenumber : float
        Wavenumber in 1/nm
    usable_size : float
        Light sensitive length of a pixel in nm
    background_range : tuple of float
        Fitted backgrounds are clamped to this range
    epsilons : tuple of float
        Position, relative intensity, and width change below which a fit
        is done
    max_iterations : int, optional
        Maximum number of iterations. Defaults to 50.

    Returns
    -------
    list of ModelParameters
        Fit results, one per profile
    """
    fitters = [AxisFitter(p, g, wavenumber, usable_size, background_range,
                          epsilons)
               for p, g in zip(profiles, guesses)]
    for _ in range(max_iterations):
        for f in fitters:
            if not f.done:
                f.iterate()
        if all(f.done for f in fitters):
            break
    return [f.params for f in fitters]


class Localizer(object):
    """Fit candidates and reject those without a valid fit"""
    stage = stages.localize
    min_window_size = 4

    def __init__(self, settings):
        """Parameters
        ----------
        settings : config.Settings
            Localization settings
        """
        self.settings = settings

    def __call__(self, stack, candidate):
        """Process a candidate

        Sets the position, intensity, background, and width attributes and
        records a verdict.

        Parameters
        ----------
        stack : frames.FrameStack
            Image data
        candidate : data.Candidate
            Candidate to process. Its `major_axis` and `minor_axis`
            attributes are used for the initial width.

        Returns
        -------
        bool
            Whether the candidate was kept
        """
        s = self.settings
        win = Window.around(candidate.x, candidate.y, s.fit_radius,
                            stack.shape)
        if (win.width < self.min_window_size or
                win.height < self.min_window_size):
            candidate.reject(self.stage, "window too small")
            return False

        photons = stack.window(candidate.frame, win)
        k = s.wavenumber
        a = s.usable_size
        profiles = [SignalProfile.from_window(photons, ax, s.pixel_size)
                    for ax in ("x", "y")]
        width = (0.5 * (candidate.major_axis + candidate.minor_axis) *
                 math.sqrt(2) * s.pixel_size * k)
        guesses = [initial_guess(p, width, k, a) for p in profiles]
        initial_noise = 0.5 * (guesses[0].background + guesses[1].background)

        px, py = fit_profiles(
            profiles, guesses, k, a,
            (s.min_noise_bound, s.max_noise_multiplier * initial_noise),
            (s.position_epsilon, s.intensity_epsilon, s.width_epsilon),
            s.max_iterations)

        if not (px.is_valid() and py.is_valid()):
            candidate.reject(self.stage, "invalid")
            return False
        if not (0 <= px.position <= profiles[0].extent and
                0 <= py.position <= profiles[1].extent):
            candidate.reject(self.stage, "outside window")
            return False
        if not (s.min_width <= px.width <= s.max_width and
                s.min_width <= py.width <= s.max_width):
            candidate.reject(self.stage, "width")
            return False

        candidate.x_est = px.position / s.pixel_size + win.left
        candidate.y_est = py.position / s.pixel_size + win.top
        candidate.intensity_x = px.intensity
        candidate.intensity_y = py.intensity
        candidate.background_x = px.background
        candidate.background_y = py.background
        candidate.width_x = px.width
        candidate.width_y = py.width
        candidate.keep(self.stage)
        return True
