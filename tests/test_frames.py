# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

import numpy as np
import pytest
import tifffile

from m2le.data import Window
from m2le.frames import FrameStack


@pytest.fixture
def frames():
    return np.arange(3 * 6 * 8, dtype=np.uint16).reshape((3, 6, 8))


class TestFrameStack:
    def test_shape(self, frames):
        """frames.FrameStack: dimensions"""
        s = FrameStack(frames)
        assert len(s) == 3
        assert s.width == 8
        assert s.height == 6
        assert s.shape == (6, 8)

    def test_single_frame(self, frames):
        """frames.FrameStack: 2D input"""
        s = FrameStack(frames[1])
        assert len(s) == 1
        np.testing.assert_array_equal(s.frame(0), frames[1])

    def test_sequence(self, frames):
        """frames.FrameStack: list of frames"""
        s = FrameStack(list(frames))
        assert len(s) == 3
        np.testing.assert_array_equal(s.frame(2), frames[2])

    def test_empty(self):
        """frames.FrameStack: empty input"""
        with pytest.raises(ValueError):
            FrameStack([])

    def test_mismatched_shape(self, frames):
        """frames.FrameStack: frames of different shape"""
        s = FrameStack([frames[0], frames[1, :3]])
        with pytest.raises(ValueError):
            s.frame(1)

    def test_scale(self, frames):
        """frames.FrameStack: photon scale factor"""
        s = FrameStack(frames)
        assert s.saturation == 65535
        assert s.scale == 1.
        np.testing.assert_allclose(s.photons(1), frames[1])

        s = FrameStack(frames, saturation_photons=1000.)
        assert s.scale == pytest.approx(65.535)
        np.testing.assert_allclose(s.photons(1), frames[1] / 65.535)

        f8 = frames.astype(np.uint8)
        s = FrameStack(f8, saturation_photons=1000.)
        assert s.saturation == 255
        np.testing.assert_allclose(s.photons(0), f8[0] / 0.255)

        s = FrameStack(frames, saturation=4095, saturation_photons=4095.)
        assert s.scale == 1.

    def test_window(self, frames):
        """frames.FrameStack.window"""
        s = FrameStack(frames, saturation_photons=32767.5)
        w = Window(2, 5, 1, 3)
        np.testing.assert_allclose(s.window(2, w), frames[2, 1:3, 2:5] / 2)

    def test_load(self, frames, tmp_path):
        """frames.FrameStack.load"""
        fn = tmp_path / "stack.tif"
        tifffile.imwrite(fn, frames)
        s = FrameStack.load(fn)
        assert len(s) == 3
        np.testing.assert_array_equal(s.frame(1), frames[1])
