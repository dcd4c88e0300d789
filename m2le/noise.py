# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Estimation of the noise level of fluorescence microscopy images

Noise estimators are callables which take an image (in photon units) and
return a :py:class:`NoiseMap`. The map is computed once per frame and passed
explicitly to whoever needs it.
"""
import numpy as np


class NoiseMap(object):
    """Per-tile noise estimate of a frame

    A global estimate is represented by a single tile covering the whole
    frame.
    """
    def __init__(self, values, tile_size=None):
        """Parameters
        ----------
        values : float or array-like
            Noise estimate per tile, indexed (row, column). A scalar is a
            global estimate.
        tile_size : int or None, optional
            Edge length of a tile. `None` means that there is only one tile.
        """
        self.values = np.atleast_2d(np.asarray(values, dtype=float))
        self.tile_size = tile_size
        if tile_size is None and self.values.shape != (1, 1):
            raise ValueError("`tile_size` is required for tiled estimates.")

    @property
    def is_global(self):
        """Whether this is a single value for the whole frame"""
        return self.tile_size is None

    def at(self, x, y):
        """Noise estimate at a pixel

        Parameters
        ----------
        x, y : int
            Pixel column and row

        Returns
        -------
        float
            Noise estimate
        """
        if self.is_global:
            return float(self.values[0, 0])
        return float(self.values[y // self.tile_size, x // self.tile_size])

    def image(self, shape):
        """Noise estimate for every pixel

        Parameters
        ----------
        shape : tuple of int
            Frame shape (height, width)

        Returns
        -------
        numpy.ndarray
            Array of `shape`
        """
        if self.is_global:
            return np.full(shape, self.values[0, 0])
        ret = np.repeat(np.repeat(self.values, self.tile_size, axis=0),
                        self.tile_size, axis=1)
        return ret[:shape[0], :shape[1]]


class HistogramNoise(object):
    """Global noise estimate from the mode of the photon histogram

    Photon counts are truncated to integers and counted in `size` bins
    ``0, 1, ..., size - 1``. The most frequent value is the noise estimate.
    If no pixel falls into the histogram range, the median is used instead.
    The result is never lower than `min_noise`.
    """
    def __init__(self, size=100, min_noise=2.):
        """Parameters
        ----------
        size : int, optional
            Number of histogram bins. Defaults to 100.
        min_noise : float, optional
            Lower bound of the estimate. Defaults to 2.
        """
        self.size = size
        self.min_noise = min_noise

    def __call__(self, photons):
        """Estimate the noise

        Parameters
        ----------
        photons : numpy.ndarray
            Image data in photons

        Returns
        -------
        NoiseMap
            Global noise estimate
        """
        photons = np.asarray(photons)
        if not photons.size:
            return NoiseMap(self.min_noise)

        bins = np.trunc(photons.ravel())
        bins = bins[np.isfinite(bins)]
        bins = bins[(bins >= 0) & (bins < self.size)].astype(int)
        if bins.size:
            est = np.argmax(np.bincount(bins, minlength=self.size))
        else:
            est = np.median(photons)
        return NoiseMap(max(float(est), self.min_noise))


class TiledMedianNoise(object):
    """Local noise estimate from the median of square tiles

    Tiles at the right and bottom border may be smaller than `tile_size`.
    No estimate is lower than `min_noise`.
    """
    def __init__(self, tile_size=16, min_noise=2.):
        """Parameters
        ----------
        tile_size : int, optional
            Edge length of a tile. Defaults to 16.
        min_noise : float, optional
            Lower bound of the estimates. Defaults to 2.
        """
        if tile_size < 1:
            raise ValueError("`tile_size` has to be positive.")
        self.tile_size = tile_size
        self.min_noise = min_noise

    def __call__(self, photons):
        """Estimate the noise

        Parameters
        ----------
        photons : numpy.ndarray
            Image data in photons

        Returns
        -------
        NoiseMap
            Tiled noise estimate
        """
        photons = np.asarray(photons, dtype=float)
        if not photons.size:
            return NoiseMap(self.min_noise)

        ts = self.tile_size
        n_rows = -(-photons.shape[0] // ts)
        n_cols = -(-photons.shape[1] // ts)
        values = np.empty((n_rows, n_cols))
        for r in range(n_rows):
            for c in range(n_cols):
                values[r, c] = np.median(
                    photons[r*ts:(r+1)*ts, c*ts:(c+1)*ts])
        np.maximum(values, self.min_noise, out=values)
        return NoiseMap(values, ts)


def make_estimator(settings):
    """Create the noise estimator selected by the settings

    Parameters
    ----------
    settings : config.Settings
        Localization settings

    Returns
    -------
    callable
        Noise estimator
    """
    if settings.noise_method == "histogram":
        return HistogramNoise(settings.histogram_size, settings.min_noise)
    if settings.noise_method == "tiled":
        return TiledMedianNoise(settings.noise_tile_size, settings.min_noise)
    raise ValueError("Unknown noise method: {}".format(settings.noise_method))


def local_noise(photons):
    """Noise estimate of a small image region

    The estimate is the smallest of all row and column means.

    Parameters
    ----------
    photons : numpy.ndarray
        Photon counts of the region, indexed (row, column)

    Returns
    -------
    float
        Noise estimate. NaN if `photons` is empty.
    """
    if not photons.size:
        return np.nan
    return float(min(photons.mean(axis=0).min(), photons.mean(axis=1).min()))
