# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Internal data structures

Attributes
----------
stages : types.SimpleNamespace
    Names of the stages that can reject a candidate. eccentricity, localize,
    third_moment, duplicates
Verdict : named tuple
    Outcome of a stage for a single candidate. `stage` is one of
    :py:attr:`stages`, `kept` is a boolean and `reason` is a short string
    describing the outcome.
"""
import collections
import functools
import math
import types


stages = types.SimpleNamespace(eccentricity="eccentricity",
                               localize="localize",
                               third_moment="third_moment",
                               duplicates="duplicates")

Verdict = collections.namedtuple("Verdict", ["stage", "kept", "reason"])


_WTuple = collections.namedtuple("WindowTuple",
                                 ["left", "right", "top", "bottom"])
_WTuple.__new__.__doc__ = ""


class Window(_WTuple):
    """Rectangular image region

    Attributes
    ----------
    left, top : int
        First column and row
    right, bottom : int
        One past the last column and row
    """
    @classmethod
    def around(cls, x, y, radius, shape):
        """Square region centered on a pixel, clipped to the frame

        Parameters
        ----------
        x, y : int
            Center pixel column and row
        radius : int
            The region spans ``[x - radius, x + radius]`` (inclusive)
        shape : tuple of int
            Frame shape (height, width)

        Returns
        -------
        Window
            Clipped region
        """
        return cls(max(0, x - radius), min(shape[1], x + radius + 1),
                   max(0, y - radius), min(shape[0], y + radius + 1))

    @property
    def width(self):
        return self.right - self.left

    @property
    def height(self):
        return self.bottom - self.top

    @property
    def slices(self):
        """Tuple of slices (rows, columns) for indexing numpy arrays"""
        return slice(self.top, self.bottom), slice(self.left, self.right)


class Candidate(object):
    """A pixel possibly containing an emitter and everything learned about it

    The detection pixel and the frame number are fixed at construction. All
    other attributes are filled in by the stages of the localization
    pipeline and are NaN until then.

    Attributes
    ----------
    signal : float
        Photon count of the detection pixel
    noise : float
        Noise estimate of the frame at the detection pixel
    eccentricity, major_axis, minor_axis : float
        Shape of the feature (in pixels), see :py:mod:`eccentricity`
    x_est, y_est : float
        Fitted position in pixel coordinates. Pixel `i` spans the interval
        ``[i, i + 1)``.
    intensity_x, intensity_y, background_x, background_y : float
        Fitted intensities and backgrounds per pixel (in photons) along each
        axis
    width_x, width_y : float
        Fitted dimensionless widths along each axis
    third_sum, third_diff : float
        Normalized third moment invariants, see :py:mod:`third_moment`
    verdicts : list of Verdict
        Outcomes of all stages that have processed the candidate
    """
    def __init__(self, x, y, frame, signal=math.nan, noise=math.nan):
        """Parameters
        ----------
        x, y : int
            Detection pixel column and row
        frame : int
            Frame number
        signal : float, optional
            Photon count of the detection pixel
        noise : float, optional
            Noise estimate
        """
        self._x = int(x)
        self._y = int(y)
        self._frame = int(frame)
        self.signal = signal
        self.noise = noise

        self.eccentricity = math.nan
        self.major_axis = math.nan
        self.minor_axis = math.nan

        self.x_est = math.nan
        self.y_est = math.nan
        self.intensity_x = math.nan
        self.intensity_y = math.nan
        self.background_x = math.nan
        self.background_y = math.nan
        self.width_x = math.nan
        self.width_y = math.nan

        self.third_sum = math.nan
        self.third_diff = math.nan

        self.verdicts = []

    @property
    def x(self):
        """Detection pixel column"""
        return self._x

    @property
    def y(self):
        """Detection pixel row"""
        return self._y

    @property
    def frame(self):
        """Frame number"""
        return self._frame

    def keep(self, stage, reason="accepted"):
        """Record that a stage accepted the candidate"""
        self.verdicts.append(Verdict(stage, True, reason))

    def reject(self, stage, reason):
        """Record that a stage rejected the candidate"""
        self.verdicts.append(Verdict(stage, False, reason))

    @property
    def rejected(self):
        """Whether any stage rejected the candidate"""
        return not all(v.kept for v in self.verdicts)

    @property
    def rejection(self):
        """First rejecting verdict or `None`"""
        for v in self.verdicts:
            if not v.kept:
                return v
        return None

    def verdict(self, stage):
        """Last verdict of `stage` or `None` if it has not run"""
        for v in reversed(self.verdicts):
            if v.stage == stage:
                return v
        return None

    @functools.cached_property
    def distance_from_center(self):
        """Distance of the fitted position from the detection pixel center

        Only meaningful once the candidate was localized.
        """
        return math.hypot(self.x_est - self._x - 0.5,
                          self.y_est - self._y - 0.5)

    def __repr__(self):
        return "Candidate(x={}, y={}, frame={}, x_est={:.3f}, " \
               "y_est={:.3f}, rejected={})".format(
                   self._x, self._y, self._frame, self.x_est, self.y_est,
                   self.rejected)
