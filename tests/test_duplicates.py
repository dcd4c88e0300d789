# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

import itertools
import unittest

from m2le import duplicates
from m2le.data import Candidate, stages


def loc(x, y, dist, frame=0):
    """Candidate localized `dist` pixels right of its pixel center"""
    c = Candidate(x, y, frame)
    c.x_est = x + 0.5 + dist
    c.y_est = y + 0.5
    return c


shape = (32, 32)


class TestOwnerGrid(unittest.TestCase):
    def test_same_pixel(self):
        """duplicates.OwnerGrid: same detection pixel, either order"""
        for order in ((0, 1), (1, 0)):
            cands = [loc(10, 10, 0.1), loc(10, 10, 0.3)]
            g = duplicates.OwnerGrid(shape, 3)
            for i in order:
                g.add(cands[i])
            self.assertEqual(g.survivors(), [cands[0]])
            self.assertEqual(cands[1].rejection.stage, stages.duplicates)
            self.assertEqual(cands[1].rejection.reason, "duplicate")

    def test_tie(self):
        """duplicates.OwnerGrid: the first one wins a tie"""
        a = loc(10, 10, 0.2)
        b = loc(10, 10, 0.2)
        g = duplicates.OwnerGrid(shape, 3)
        g.add(a)
        g.add(b)
        self.assertEqual(g.survivors(), [a])
        self.assertTrue(b.rejected)

    def test_far_apart(self):
        """duplicates.OwnerGrid: no overlap"""
        a = loc(10, 10, 0.3)
        b = loc(17, 10, 0.1)
        c = loc(10, 3, 0.2)
        g = duplicates.OwnerGrid(shape, 3)
        for i in (a, b, c):
            g.add(i)
        self.assertEqual(g.survivors(), [a, b, c])

    def test_neighbor(self):
        """duplicates.OwnerGrid: neighboring pixels"""
        for order in itertools.permutations(range(3)):
            cands = [loc(10, 10, 0.3), loc(11, 10, 0.1), loc(12, 11, 0.2)]
            g = duplicates.OwnerGrid(shape, 3)
            for i in order:
                g.add(cands[i])
            self.assertEqual(g.survivors(), [cands[1]])
            self.assertTrue(cands[0].rejected)
            self.assertTrue(cands[2].rejected)

    def test_takeover(self):
        """duplicates.OwnerGrid: better candidate takes over a claim"""
        c = loc(13, 10, 0.2)
        d = loc(8, 10, 0.3)
        a = loc(10, 10, 0.1)
        g = duplicates.OwnerGrid(shape, 3)
        g.add(c)
        g.add(d)
        self.assertFalse(d.rejected)
        self.assertIs(g.owner(10, 10), c)
        self.assertIs(g.owner(9, 10), d)
        g.add(a)
        self.assertEqual(g.survivors(), [a])
        self.assertTrue(c.rejected)
        self.assertTrue(d.rejected)
        self.assertIs(g.owner(7, 10), a)
        self.assertIsNone(g.owner(16, 10))
        self.assertIsNone(g.owner(5, 10))

    def test_radius(self):
        """duplicates.OwnerGrid: claimed region"""
        a = loc(10, 10, 0.1)
        b = loc(12, 12, 0.2)
        g = duplicates.OwnerGrid(shape, 1)
        g.add(a)
        g.add(b)
        self.assertEqual(g.survivors(), [a, b])
        self.assertIs(g.owner(11, 11), a)
        self.assertIs(g.owner(13, 13), b)
        self.assertIsNone(g.owner(12, 8))

    def test_keep_verdict(self):
        """duplicates.OwnerGrid.survivors: record verdicts"""
        a = loc(10, 10, 0.1)
        g = duplicates.OwnerGrid(shape)
        g.add(a)
        g.survivors()
        self.assertEqual(a.verdict(stages.duplicates).reason, "accepted")
        self.assertFalse(a.rejected)

    def test_border(self):
        """duplicates.OwnerGrid: claims are clipped to the frame"""
        a = loc(1, 30, 0.1)
        g = duplicates.OwnerGrid(shape, 3)
        g.add(a)
        self.assertIs(g.owner(0, 27), a)
        self.assertIs(g.owner(4, 31), a)
        self.assertIsNone(g.owner(-1, 30))
        self.assertIsNone(g.owner(1, 32))
        self.assertEqual(len(g._owners), 5 * 5)
        for x, y in g._owners:
            self.assertTrue(0 <= x < shape[1] and 0 <= y < shape[0])

        b = loc(0, 31, 0.2)
        g.add(b)
        self.assertTrue(b.rejected)
        self.assertEqual(g.survivors(), [a])


class TestDuplicateRemover(unittest.TestCase):
    def test_frames(self):
        """duplicates.DuplicateRemover: frames are independent"""
        r = duplicates.DuplicateRemover(shape)
        a = loc(10, 10, 0.3, 0)
        b = loc(10, 10, 0.1, 1)
        c = loc(10, 10, 0.2, 0)
        for i in (b, a, c):
            r.add(i)
        self.assertEqual(r.finish(), [c, b])
        self.assertTrue(a.rejected)
        self.assertEqual(r.finish(), [])

    def test_pop_frame(self):
        """duplicates.DuplicateRemover.pop_frame"""
        r = duplicates.DuplicateRemover(shape)
        a = loc(10, 10, 0.3, 2)
        r.add(a)
        self.assertEqual(r.pop_frame(1), [])
        self.assertEqual(r.pop_frame(2), [a])
        self.assertEqual(r.pop_frame(2), [])

    def test_release(self):
        """duplicates.DuplicateRemover: popped frames are released"""
        r = duplicates.DuplicateRemover(shape)
        for f in range(1000):
            cands = [loc(3 + 7 * i, 10, 0.1, f) for i in range(4)]
            for c in cands:
                r.add(c)
            self.assertEqual(r.open_frames, [f])
            self.assertEqual(r.pop_frame(f), cands)
            self.assertEqual(r.open_frames, [])


if __name__ == "__main__":
    unittest.main()
