# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Localization settings and default function parameters
======================================================

All numeric and boolean parameters of the localization algorithm are
collected in a :py:class:`Settings` instance. Settings can be written to and
read from YAML files.

Parameters that do not influence the results, but only how the computation
is carried out (e.g. the number of threads), are taken from :py:attr:`rc`
with help of the :py:func:`use_defaults` decorator.


Examples
--------

>>> s = Settings(snr_cutoff=5)
>>> s.snr_cutoff
5
>>> s.save("settings.yaml")
>>> Settings.load("settings.yaml") == s
True

Define a function that gets the number of threads from :py:attr:`rc`:

>>> @use_defaults
... def f(num_threads=None):
...     return num_threads


Programming reference
---------------------

.. autoclass:: Settings
    :members:
.. autofunction:: use_defaults
.. autodata:: rc
"""
import collections
import functools
import inspect
import math
import multiprocessing
from pathlib import Path

import yaml


rc = dict(num_threads=multiprocessing.cpu_count(),
          queue_size=1000)
"""Global config dictionary"""


def use_defaults(func):
    """Decorator to apply default values to functions

    If any function argument whose name is a key in :py:attr:`rc` is `None`,
    set its value to what is specified in :py:attr:`rc`.

    Parameters
    ----------
    func : function
        Function to be decorated

    Returns
    -------
    function
        Modified function

    Examples
    --------
    >>> @use_defaults
    ... def f(queue_size=None):
    ...     return queue_size
    >>> f()
    1000
    >>> f(10)
    10
    >>> config.rc["queue_size"] = 20
    >>> f()
    20
    """
    sig = inspect.signature(func)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        ba = sig.bind(*args, **kwargs)
        ba.apply_defaults()
        for name, value in ba.arguments.items():
            if value is None:
                ba.arguments[name] = rc.get(name, None)
        return func(*ba.args, **ba.kwargs)

    wrapper.__signature__ = sig
    return wrapper


class _SettingsDumper(yaml.SafeDumper):
    pass


def _yaml_dict_representer(dumper, data):
    return dumper.represent_dict(data.items())


_SettingsDumper.add_representer(collections.OrderedDict,
                                _yaml_dict_representer)


noise_methods = ("histogram", "tiled")


class Settings(object):
    """Parameters of the localization algorithm

    Any attribute can be set by passing it as a keyword argument to the
    constructor. Acceptances, the usable pixel fraction and the intensity
    epsilon are given as fractions (i.e. between 0 and 1).

    Attributes
    ----------
    snr_cutoff : float
        Pixels brighter than `snr_cutoff` times the noise estimate are
        detected as candidates. Defaults to 4.
    min_noise : float
        Lower bound of the frame noise estimate in photons. Defaults to 2.
    pixel_size : float
        Pixel pitch in nm. Defaults to 110.
    saturation_photons : float
        Number of photons corresponding to a saturated pixel. Defaults to
        65535.
    debug : bool
        Whether to report shape and moment diagnostics. Defaults to `False`.
    eccentricity_acceptance : float
        Acceptance percentile of the eccentricity rejector. Defaults to 0.6.
    eccentricity_enabled : bool
        If `False`, eccentricities are computed, but nothing is rejected.
        Defaults to `True`.
    eccentricity_radius : int
        Radius of the window used for computing shape properties. Defaults
        to 3.
    third_moment_acceptance : float
        Acceptance percentile of the third moment rejector. Defaults to 0.95.
    third_moment_enabled : bool
        If `False`, third moments are computed, but nothing is rejected.
        Defaults to `False`.
    wavelength : float
        Emission wavelength in nm. Defaults to 550.
    numerical_aperture : float
        Numerical aperture of the objective. Defaults to 1.4.
    usable_pixel : float
        Light sensitive fraction of the pixel pitch. Defaults to 0.9.
    position_epsilon, intensity_epsilon, width_epsilon : float
        Fitting stops once the position changes by less than
        `position_epsilon` nm, the intensity changes by less than
        `intensity_epsilon` relative to its value, or the width changes by
        less than `width_epsilon`. Default to 1e-4 each.
    max_iterations : int
        Maximum number of fitting iterations. Defaults to 50.
    fit_radius : int
        Radius of the fitting window. Defaults to 3.
    max_noise_multiplier, min_noise_bound : float
        The fitted background is clamped to the range
        ``[min_noise_bound, max_noise_multiplier * initial_background]``.
        Default to 2 and 1, respectively.
    min_width, max_width : float
        Accepted range of the fitted (dimensionless) width. Defaults to 1.5
        and 3.
    noise_method : {"histogram", "tiled"}
        "histogram" estimates a single noise value per frame from the mode
        of the photon histogram, "tiled" computes the median of square tiles.
        Defaults to "histogram".
    noise_tile_size : int
        Tile size for the "tiled" method. Defaults to 16.
    histogram_size : int
        Number of histogram bins for the "histogram" method. Defaults to 100.
    border_margin : int
        Do not detect candidates closer than this to the frame border.
        Defaults to 3.
    duplicate_radius : int
        Radius of the region claimed by a localization when removing
        duplicates. Defaults to 3.
    """
    _file_header = "# m2le localization settings\n"

    _defaults = collections.OrderedDict((
        ("snr_cutoff", 4.),
        ("min_noise", 2.),
        ("pixel_size", 110.),
        ("saturation_photons", 65535.),
        ("debug", False),
        ("eccentricity_acceptance", 0.6),
        ("eccentricity_enabled", True),
        ("eccentricity_radius", 3),
        ("third_moment_acceptance", 0.95),
        ("third_moment_enabled", False),
        ("wavelength", 550.),
        ("numerical_aperture", 1.4),
        ("usable_pixel", 0.9),
        ("position_epsilon", 1e-4),
        ("intensity_epsilon", 1e-4),
        ("width_epsilon", 1e-4),
        ("max_iterations", 50),
        ("fit_radius", 3),
        ("max_noise_multiplier", 2.),
        ("min_noise_bound", 1.),
        ("min_width", 1.5),
        ("max_width", 3.),
        ("noise_method", "histogram"),
        ("noise_tile_size", 16),
        ("histogram_size", 100),
        ("border_margin", 3),
        ("duplicate_radius", 3)))

    def __init__(self, **kwargs):
        unknown = set(kwargs) - set(self._defaults)
        if unknown:
            raise TypeError("Unknown settings: {}".format(
                ", ".join(sorted(unknown))))
        for k, v in self._defaults.items():
            setattr(self, k, kwargs.get(k, v))

        if self.noise_method not in noise_methods:
            raise ValueError(
                "Unknown noise method: {}".format(self.noise_method))
        if not 0 < self.usable_pixel <= 1:
            raise ValueError("`usable_pixel` has to be in (0, 1]")
        for name in ("eccentricity_acceptance", "third_moment_acceptance"):
            if not 0 < getattr(self, name) < 1:
                raise ValueError("`{}` has to be in (0, 1)".format(name))

    @property
    def wavenumber(self):
        """Wavenumber :math:`2 \\pi NA / \\lambda` in 1/nm"""
        return 2 * math.pi * self.numerical_aperture / self.wavelength

    @property
    def usable_size(self):
        """Light sensitive length of a pixel in nm"""
        return self.pixel_size * self.usable_pixel

    def to_dict(self):
        """Get settings as an ordered dict

        Returns
        -------
        collections.OrderedDict
            Map of setting name -> value
        """
        return collections.OrderedDict(
            (k, getattr(self, k)) for k in self._defaults)

    def copy(self, **kwargs):
        """Create a copy, optionally changing some settings

        Parameters
        ----------
        **kwargs
            Settings to change

        Returns
        -------
        Settings
            New instance
        """
        d = self.to_dict()
        d.update(kwargs)
        return type(self)(**d)

    def __eq__(self, other):
        if not isinstance(other, Settings):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        changed = ["{}={!r}".format(k, v) for k, v in self.to_dict().items()
                   if v != self._defaults[k]]
        return "Settings({})".format(", ".join(changed))

    def save(self, file):
        """Save settings to a yaml file

        Parameters
        ----------
        file : str or file-like object
            File name or file to write to
        """
        s = self.to_dict()
        if isinstance(file, (str, Path)):
            with open(file, "w") as f:
                f.write(self._file_header)
                f.write(yaml.dump(s, Dumper=_SettingsDumper))
        else:
            file.write(self._file_header)
            file.write(yaml.dump(s, Dumper=_SettingsDumper))

    @classmethod
    def load(cls, file):
        """Load settings from a yaml file

        Settings missing from the file are set to their default values.

        Parameters
        ----------
        file : str or file-like object
            File name or file to read from

        Returns
        -------
        Settings
            Class instance with settings loaded from file
        """
        if isinstance(file, (str, Path)):
            with open(file, "r") as f:
                s = yaml.safe_load(f)
        else:
            s = yaml.safe_load(file)
        return cls(**(s or {}))
