# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

import numpy as np
import pandas as pd
import pytest

import m2le
from m2le import api, config, sim
from m2le.data import Candidate


@pytest.fixture
def image():
    img = sim.simulate_spots((32, 32), [[15.3, 16.7]], 3000., 1.) + 10.
    return np.round(img).astype(np.uint16)


@pytest.fixture
def frames():
    centers = [[[15.3, 16.7]],
               [[8.6, 9.2], [23.4, 22.1]],
               [[20.7, 11.5]]]
    ret = []
    for c in centers:
        img = sim.simulate_spots((32, 32), c, 3000., 1.) + 10.
        ret.append(np.round(img).astype(np.uint16))
    return centers, ret


class TestLocate:
    def test_single(self, image):
        """api.locate: single emitter"""
        res = m2le.locate(image, num_threads=2)
        assert list(res.columns) == api.columns
        assert len(res) == 1
        row = res.iloc[0]
        assert row["frame"] == 0
        np.testing.assert_allclose([row["x"], row["y"]], [15.3, 16.7],
                                   atol=0.05)
        np.testing.assert_allclose([row["x_nm"], row["y_nm"]],
                                   [row["x"] * 110., row["y"] * 110.])
        np.testing.assert_allclose([row["bg_x"], row["bg_y"]], 10.,
                                   rtol=0.1)

    @pytest.mark.parametrize("seed", [0, 1, 3, 4, 5])
    def test_shot_noise(self, seed):
        """api.locate: single emitter with Poisson noise"""
        img = sim.simulate_spots((32, 32), [[15.3, 16.7]], 3000., 1.) + 10.
        img = np.random.RandomState(seed).poisson(img).astype(np.uint16)
        res = m2le.locate(img, num_threads=2, eccentricity_enabled=False)
        assert len(res) == 1
        np.testing.assert_allclose(res.loc[0, ["x", "y"]].to_numpy(float),
                                   [15.3, 16.7], atol=0.1)

    def test_no_signal(self):
        """api.locate: flat image"""
        res = m2le.locate(np.full((32, 32), 10, dtype=np.uint16),
                          num_threads=2)
        assert list(res.columns) == api.columns
        assert len(res) == 0

    def test_not_2d(self, image):
        """api.locate: wrong dimensions"""
        with pytest.raises(ValueError):
            m2le.locate(image[np.newaxis, ...])

    def test_kwargs(self, image):
        """api.locate: override settings"""
        res = m2le.locate(image, num_threads=2, snr_cutoff=1000.)
        assert len(res) == 0
        res = m2le.locate(image, num_threads=2, pixel_size=100.)
        np.testing.assert_allclose(res.loc[0, "x_nm"], res.loc[0, "x"] * 100.)

    def test_debug(self, image):
        """api.locate: diagnostic columns"""
        res = m2le.locate(image, num_threads=2, debug=True)
        assert list(res.columns) == api.columns + api.debug_columns
        assert res.loc[0, "roi_x"] == 15.5
        assert res.loc[0, "roi_y"] == 16.5
        assert res.loc[0, "ecc"] < 0.2
        assert np.isfinite(res.loc[0, "third_sum"])

    def test_settings_file(self, image, tmp_path):
        """api.locate: settings from file"""
        fn = tmp_path / "settings.yaml"
        config.Settings(snr_cutoff=1000.).save(fn)
        assert len(m2le.locate(image, fn, num_threads=2)) == 0
        assert len(m2le.locate(image, str(fn), num_threads=2,
                               snr_cutoff=4.)) == 1

    def test_third_moment(self, image):
        """api.locate: third moment rejection enabled"""
        res = m2le.locate(image, num_threads=2, third_moment_enabled=True)
        assert len(res) == 1


class TestBatch:
    def test_batch(self, frames):
        """api.batch: several frames"""
        centers, images = frames
        res = m2le.batch(images, num_threads=3, queue_size=10)
        assert list(res.columns) == api.columns
        assert res["frame"].tolist() == [0, 1, 1, 2]
        exp = np.concatenate([np.array(c)[np.argsort(np.array(c)[:, 1])]
                              for c in centers])
        np.testing.assert_allclose(res[["x", "y"]].to_numpy(), exp,
                                   atol=0.05)

    def test_frame_stack(self, frames):
        """api.batch: FrameStack input"""
        centers, images = frames
        res = m2le.batch(m2le.FrameStack(images), num_threads=2)
        assert len(res) == 4

    def test_saturation(self, frames):
        """api.batch: photon scaling"""
        centers, images = frames
        res = m2le.batch(images, num_threads=2, saturation_photons=65535. / 2)
        res2 = m2le.batch(images, num_threads=2)
        np.testing.assert_allclose(res[["x", "y"]], res2[["x", "y"]],
                                   atol=0.1)
        np.testing.assert_allclose(res["bg_x"], res2["bg_x"] / 2, rtol=0.1)


class TestToDataFrame:
    def test_empty(self):
        """api.to_dataframe: no candidates"""
        df = api.to_dataframe([])
        assert list(df.columns) == api.columns
        assert df["frame"].dtype == int
        assert df["x"].dtype == float
        df = api.to_dataframe([], debug=True)
        assert list(df.columns) == api.columns + api.debug_columns

    def test_convert(self):
        """api.to_dataframe"""
        c = Candidate(3, 4, 2)
        c.x_est = 3.2
        c.y_est = 4.9
        c.intensity_x = 0.1
        c.intensity_y = 0.2
        c.background_x = 10.
        c.background_y = 11.
        c.width_x = 2.4
        c.width_y = 2.5
        c.eccentricity = 0.05
        df = api.to_dataframe([c], pixel_size=100., debug=True)
        exp = pd.DataFrame(
            {"frame": [2], "x": [3.2], "y": [4.9], "x_nm": [320.],
             "y_nm": [490.], "signal_x": [0.1], "signal_y": [0.2],
             "bg_x": [10.], "bg_y": [11.], "size_x": [2.4], "size_y": [2.5],
             "ecc": [0.05], "major_axis": [np.nan], "minor_axis": [np.nan],
             "roi_x": [3.5], "roi_y": [4.5], "third_sum": [np.nan],
             "third_diff": [np.nan]})
        pd.testing.assert_frame_equal(df, exp, check_dtype=False)
