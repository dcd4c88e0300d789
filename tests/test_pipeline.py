# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

import threading
import unittest
from unittest import mock

import numpy as np

from m2le import config, pipeline, sim
from m2le.channel import Channel
from m2le.data import Candidate, stages
from m2le.frames import FrameStack


def make_frames(centers, shape=(32, 32), photons=3000.):
    ret = []
    for c in centers:
        img = sim.simulate_spots(shape, c, photons, 1.) + 10.
        ret.append(np.round(img).astype(np.uint16))
    return np.array(ret)


class TestPipeline(unittest.TestCase):
    def setUp(self):
        self.centers = [[[15.3, 16.7]], [[8.6, 20.2]], [[22.1, 9.9]]]
        self.stack = FrameStack(make_frames(self.centers))

    def test_run(self):
        """pipeline.Pipeline.run: one emitter per frame"""
        for n in (1, 3):
            p = pipeline.Pipeline(self.stack, num_threads=n, queue_size=4)
            res = p.run()
            self.assertEqual([c.frame for c in res], [0, 1, 2])
            for c, exp in zip(res, self.centers):
                np.testing.assert_allclose([c.x_est, c.y_est], exp[0],
                                           atol=0.05)
                self.assertFalse(c.rejected)
                self.assertEqual(c.verdict(stages.duplicates).reason,
                                 "accepted")

    def test_stats(self):
        """pipeline.Pipeline.stats"""
        p = pipeline.Pipeline(self.stack, num_threads=2)
        res = p.run()
        st = p.stats
        self.assertEqual(st["find"].received, 3)
        self.assertEqual(st[stages.eccentricity].received, st["find"].kept)
        self.assertEqual(st[stages.localize].received,
                         st[stages.eccentricity].kept)
        self.assertEqual(st[stages.third_moment].received,
                         st[stages.localize].kept)
        self.assertEqual(st[stages.third_moment].received,
                         st[stages.third_moment].kept)
        self.assertEqual(st[stages.duplicates].kept, len(res))

    def test_no_candidates(self):
        """pipeline.Pipeline.run: nothing to find"""
        stack = FrameStack(np.full((2, 20, 20), 10, dtype=np.uint16))
        p = pipeline.Pipeline(stack, num_threads=2)
        self.assertEqual(p.run(), [])
        self.assertEqual(p.stats["find"], pipeline.StageStats(2, 0))

    def test_defaults(self):
        """pipeline.Pipeline: values from config.rc"""
        with mock.patch.dict(config.rc, num_threads=3, queue_size=7):
            p = pipeline.Pipeline(self.stack)
        self.assertEqual(p.num_threads, 3)
        self.assertEqual(p.queue_size, 7)
        self.assertEqual(p.settings, config.Settings())

    def test_abort(self):
        """pipeline.Pipeline.abort: stop while running, then run again"""
        p = pipeline.Pipeline(self.stack, num_threads=2, queue_size=1)
        orig = p._stages[0]

        def abort_and_keep(stack, c):
            p.abort()
            return True

        p._stages[0] = (stages.eccentricity, abort_and_keep)
        res = p.run()
        self.assertIsInstance(res, list)
        self.assertLess(len(res), 3)
        self.assertTrue(p.aborted)

        p._stages[0] = orig
        res = p.run()
        self.assertFalse(p.aborted)
        self.assertEqual([c.frame for c in res], [0, 1, 2])

    def test_rerun(self):
        """pipeline.Pipeline.run: statistics start from scratch"""
        p = pipeline.Pipeline(self.stack, num_threads=2)
        res1 = p.run()
        st1 = p.stats
        res2 = p.run()
        self.assertEqual(p.stats, st1)
        self.assertEqual(p.stats["find"].received, 3)
        self.assertEqual(len(res1), len(res2))

    def test_rejected_frames(self):
        """pipeline.Pipeline.run: frames emptied by an intermediate stage"""
        centers = [[[15.3, 16.7]], [[8.6, 20.2]]] * 3
        stack = FrameStack(make_frames(centers))
        for n in (1, 2):
            p = pipeline.Pipeline(stack, num_threads=n, queue_size=2)
            name, fit = p._stages[1]

            def fit_even(stk, c, fit=fit):
                return c.frame % 2 == 0 and fit(stk, c)

            p._stages[1] = (name, fit_even)
            res = p.run()
            self.assertEqual([c.frame for c in res], [0, 2, 4])
            self.assertEqual(p._tracker.pending, [])
            self.assertEqual(p.stats[stages.duplicates].kept, 3)

    def test_streaming(self):
        """pipeline.Pipeline: survivors are passed on when a frame is done"""
        p = pipeline.Pipeline(self.stack, num_threads=1)

        def loc(x, y, frame, dist):
            c = Candidate(x, y, frame)
            c.x_est = x + 0.5 + dist
            c.y_est = y + 0.5
            return c

        a = loc(10, 10, 0, 0.1)
        b = loc(11, 10, 0, 0.3)
        c = loc(10, 10, 1, 0.2)
        d = loc(20, 20, 2, 0.1)
        p._tracker.expect(0, 2)
        p._tracker.expect(1, 1)
        p._tracker.expect(2, 2)

        source = Channel(0, 1, 1)
        sink = Channel(0, 1, 1)
        t = threading.Thread(target=p._worker,
                             args=("dedupe", p._remove_duplicates, source,
                                   sink))
        t.start()
        try:
            source.put(a)
            source.put(b)
            # frame 0 is complete while the input is still open
            self.assertIs(sink.get(), a)
            self.assertTrue(b.rejected)
            source.put(c)
            self.assertIs(sink.get(), c)
            source.put(d)
            self.assertEqual(p._tracker.pending, [2])
            # the other candidate of frame 2 was rejected upstream
            self.assertTrue(p._tracker.resolve(2))
            source.put(pipeline.FrameDone(2))
            self.assertIs(sink.get(), d)
        finally:
            source.close()
            t.join()
        self.assertEqual(list(sink), [])
        self.assertEqual(p.stats[stages.duplicates], pipeline.StageStats(4, 3))

    def test_worker_error(self):
        """pipeline.Pipeline.run: exceptions in workers are raised"""
        p = pipeline.Pipeline(self.stack, num_threads=2, queue_size=1)
        p._noise_estimator = mock.Mock(side_effect=RuntimeError("fail"))
        with self.assertRaises(RuntimeError):
            p.run()
        self.assertTrue(p.aborted)


if __name__ == "__main__":
    unittest.main()
