# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Read-only access to image sequences in photon units"""
from pathlib import Path

import numpy as np
import tifffile


class FrameStack(object):
    """Sequence of equally shaped grayscale frames

    Raw pixel values are converted to photon counts by dividing by
    :py:attr:`scale`, which is the ratio of the raw value of a saturated pixel
    (255 for 8 bit data, 65535 otherwise) and the configured number of photons
    at saturation.

    Frame data is never modified and can be shared between threads.
    """
    def __init__(self, frames, saturation_photons=65535., saturation=None):
        """Parameters
        ----------
        frames : array-like or sequence of array-like
            Either a 3D array (frame, row, column), a 2D array (single frame),
            or a sequence of 2D arrays.
        saturation_photons : float, optional
            Number of photons corresponding to a saturated pixel. Defaults to
            65535.
        saturation : int or None, optional
            Raw value of a saturated pixel. If `None`, use 255 for 8 bit
            unsigned integer data and 65535 for anything else.
        """
        if isinstance(frames, np.ndarray) and frames.ndim == 2:
            frames = frames[np.newaxis, ...]
        if not len(frames):
            raise ValueError("Empty `frames`")
        self._frames = frames

        first = np.asarray(frames[0])
        if first.ndim != 2:
            raise ValueError("Frames need to be 2D.")
        self.height, self.width = first.shape
        """Frame height and width in pixels"""

        if saturation is None:
            saturation = 255 if first.dtype == np.uint8 else 65535
        self.saturation = saturation
        """Raw value of a saturated pixel"""
        self.scale = saturation / saturation_photons
        """Raw pixel value per photon"""

    def __len__(self):
        return len(self._frames)

    @property
    def shape(self):
        """Shape of a single frame (height, width)"""
        return self.height, self.width

    def frame(self, index):
        """Raw data of a frame

        Parameters
        ----------
        index : int
            Frame number

        Returns
        -------
        numpy.ndarray
            Raw frame data
        """
        ret = np.asarray(self._frames[index])
        if ret.shape != self.shape:
            raise ValueError(
                "Frame {} has shape {}, expected {}.".format(
                    index, ret.shape, self.shape))
        return ret

    def photons(self, index):
        """Frame data converted to photon counts

        Parameters
        ----------
        index : int
            Frame number

        Returns
        -------
        numpy.ndarray
            Floating point photon counts
        """
        return self.frame(index) / self.scale

    def window(self, index, win):
        """Photon counts within a window

        Parameters
        ----------
        index : int
            Frame number
        win : data.Window
            Region to extract

        Returns
        -------
        numpy.ndarray
            Photon counts, indexed (row, column)
        """
        return self.frame(index)[win.slices] / self.scale

    @classmethod
    def load(cls, file, **kwargs):
        """Load a TIFF stack

        Parameters
        ----------
        file : str or pathlib.Path
            File name
        **kwargs
            Passed to the constructor

        Returns
        -------
        FrameStack
            Frames read from the file
        """
        return cls(tifffile.imread(str(Path(file))), **kwargs)
