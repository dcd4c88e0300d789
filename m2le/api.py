# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""API for the maximum likelihood localization algorithm

Provides the standard :py:func:`locate` and :py:func:`batch` functions.
"""
import logging
from pathlib import Path

import numpy as np
import pandas as pd

from . import config
from .frames import FrameStack
from .pipeline import Pipeline


_logger = logging.getLogger(__name__)


columns = ["frame", "x", "y", "x_nm", "y_nm", "signal_x", "signal_y",
           "bg_x", "bg_y", "size_x", "size_y"]
"""Columns of the localization DataFrame"""

debug_columns = ["ecc", "major_axis", "minor_axis", "roi_x", "roi_y",
                 "third_sum", "third_diff"]
"""Additional columns in debug mode"""


def to_dataframe(candidates, pixel_size=110., debug=False):
    """Convert localized candidates to a DataFrame

    Parameters
    ----------
    candidates : list of data.Candidate
        Localizations
    pixel_size : float, optional
        Pixel size in nm. Defaults to 110.
    debug : bool, optional
        Whether to add shape and moment diagnostics. Defaults to `False`.

    Returns
    -------
    pandas.DataFrame
        One row per candidate. x and y are in pixels, x_nm and y_nm are in
        nm, signal_x and signal_y are the fitted intensities, bg_x and bg_y
        the backgrounds per pixel, size_x and size_y the widths. In debug
        mode, there are also columns ecc, major_axis, minor_axis (shape
        properties), roi_x, roi_y (center of the detection pixel), third_sum,
        and third_diff (third moment invariants).
    """
    cols = columns + debug_columns if debug else columns
    if not candidates:
        df = pd.DataFrame({c: pd.Series(dtype=float) for c in cols})
        df["frame"] = df["frame"].astype(int)
        return df

    data = {
        "frame": np.array([c.frame for c in candidates], dtype=int),
        "x": np.array([c.x_est for c in candidates], dtype=float),
        "y": np.array([c.y_est for c in candidates], dtype=float),
        "signal_x": [c.intensity_x for c in candidates],
        "signal_y": [c.intensity_y for c in candidates],
        "bg_x": [c.background_x for c in candidates],
        "bg_y": [c.background_y for c in candidates],
        "size_x": [c.width_x for c in candidates],
        "size_y": [c.width_y for c in candidates],
    }
    data["x_nm"] = data["x"] * pixel_size
    data["y_nm"] = data["y"] * pixel_size
    if debug:
        data["ecc"] = [c.eccentricity for c in candidates]
        data["major_axis"] = [c.major_axis for c in candidates]
        data["minor_axis"] = [c.minor_axis for c in candidates]
        data["roi_x"] = [c.x + 0.5 for c in candidates]
        data["roi_y"] = [c.y + 0.5 for c in candidates]
        data["third_sum"] = [c.third_sum for c in candidates]
        data["third_diff"] = [c.third_diff for c in candidates]
    return pd.DataFrame(data, columns=cols)


def _make_settings(settings, kwargs):
    if settings is None:
        return config.Settings(**kwargs)
    if isinstance(settings, (str, Path)):
        settings = config.Settings.load(settings)
    return settings.copy(**kwargs) if kwargs else settings


@config.use_defaults
def batch(frames, settings=None, num_threads=None, queue_size=None,
          **kwargs):
    """Locate emitters in a series of images

    Parameters
    ----------
    frames : array-like or sequence of array-like or frames.FrameStack
        Image data. If this is not a :py:class:`frames.FrameStack`, it is
        converted to one using `settings.saturation_photons`.
    settings : config.Settings or str or pathlib.Path or None, optional
        Localization settings or name of a YAML file to read them from. If
        `None`, use defaults.
    **kwargs
        Override individual settings, e.g. ``snr_cutoff=5``.

    Returns
    -------
    pandas.DataFrame
        Localization data, see :py:func:`to_dataframe`. Sorted by frame.

    Other parameters
    ----------------
    num_threads : int or None, optional
        Number of worker threads per stage. Defaults to the number of CPUs.
    queue_size : int or None, optional
        Capacity of the channels between stages.
    """
    settings = _make_settings(settings, kwargs)
    if not isinstance(frames, FrameStack):
        frames = FrameStack(frames, settings.saturation_photons)
    _logger.debug("Settings: %r", settings)

    p = Pipeline(frames, settings, num_threads, queue_size)
    cands = p.run()
    _logger.info("Found %d localizations in %d frames.", len(cands),
                 len(frames))
    return to_dataframe(cands, settings.pixel_size, settings.debug)


def locate(raw_image, settings=None, num_threads=None, **kwargs):
    """Locate emitters in a single image

    Parameters
    ----------
    raw_image : array-like
        Raw image data. 8 bit unsigned integer data saturates at 255,
        anything else at 65535.
    settings : config.Settings or str or pathlib.Path or None, optional
        Localization settings or name of a YAML file to read them from. If
        `None`, use defaults.
    **kwargs
        Override individual settings, e.g. ``snr_cutoff=5``.

    Returns
    -------
    pandas.DataFrame
        Localization data, see :py:func:`to_dataframe`. The frame column is
        always 0.

    Other parameters
    ----------------
    num_threads : int or None, optional
        Number of worker threads per stage. Defaults to the number of CPUs.
    """
    img = np.asarray(raw_image)
    if img.ndim != 2:
        raise ValueError("`raw_image` has to be 2D.")
    return batch(img[np.newaxis, ...], settings, num_threads, **kwargs)
