# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Remove multiple localizations of the same emitter

Several neighboring pixels of a bright feature are usually detected as
candidates, and all of them are fitted to the same emitter. Of each group of
such localizations, only the one with the smallest distance between the fitted
position and the center of its detection pixel is kept.

Each localization claims a square region around its detection pixel in a
sparse per-frame "owner" grid. A localization whose detection pixel is
already claimed by a better one is rejected; if the incumbent is worse, it is
rejected instead.
"""
import logging

from .data import Window, stages


_logger = logging.getLogger(__name__)


def score(candidate):
    """Tie-break score, smaller is better"""
    return candidate.distance_from_center


class OwnerGrid(object):
    """Claimed pixels of a single frame"""

    def __init__(self, shape, radius=3):
        """Parameters
        ----------
        shape : tuple of int
            Frame shape (height, width). Claimed regions are clipped to it.
        radius : int, optional
            Claimed regions extend `radius` pixels from the detection pixel
            in each direction. Defaults to 3.
        """
        self.shape = shape
        self.radius = radius
        self._owners = {}
        self.candidates = []

    def _cells(self, candidate):
        win = Window.around(candidate.x, candidate.y, self.radius, self.shape)
        for x in range(win.left, win.right):
            for y in range(win.top, win.bottom):
                yield x, y

    def owner(self, x, y):
        """Candidate claiming a pixel or `None`"""
        return self._owners.get((x, y))

    def _release(self, candidate):
        for c in self._cells(candidate):
            if self._owners.get(c) is candidate:
                del self._owners[c]

    def _reject(self, candidate):
        candidate.reject(stages.duplicates, "duplicate")
        self._release(candidate)

    def add(self, candidate):
        """Add a localized candidate

        Parameters
        ----------
        candidate : data.Candidate
            New candidate. If it loses against the owner of its detection
            pixel, a verdict is recorded.
        """
        self.candidates.append(candidate)
        cur_score = score(candidate)

        incumbent = self.owner(candidate.x, candidate.y)
        if incumbent is not None:
            if score(incumbent) <= cur_score:
                candidate.reject(stages.duplicates, "duplicate")
                return
            self._reject(incumbent)

        for c in self._cells(candidate):
            other = self._owners.get(c)
            if other is not None and score(other) <= cur_score:
                continue
            self._owners[c] = candidate
            if other is not None and (other.x, other.y) == c:
                # the worse owner's own detection pixel is taken over
                self._reject(other)

    def survivors(self):
        """Candidates that were not rejected

        A kept verdict is recorded for each of them.

        Returns
        -------
        list of data.Candidate
            Survivors in order of arrival
        """
        ret = []
        for c in self.candidates:
            if c.rejected:
                continue
            c.keep(stages.duplicates)
            ret.append(c)
        return ret


class DuplicateRemover(object):
    """Collect localizations and remove duplicates frame by frame

    Candidates of different frames never conflict. All candidates of a
    given frame need to be passed to the same instance. Once a frame is
    complete, use :py:meth:`pop_frame` to get its survivors and release its
    state.
    """
    def __init__(self, shape, radius=3):
        """Parameters
        ----------
        shape : tuple of int
            Frame shape (height, width)
        radius : int, optional
            Claimed regions extend `radius` pixels from the detection pixel
            in each direction. Defaults to 3.
        """
        self.shape = shape
        self.radius = radius
        self._grids = {}

    def add(self, candidate):
        """Add a localized candidate"""
        try:
            grid = self._grids[candidate.frame]
        except KeyError:
            grid = self._grids[candidate.frame] = OwnerGrid(self.shape,
                                                           self.radius)
        grid.add(candidate)

    @property
    def open_frames(self):
        """Frames that have candidates but were not popped yet"""
        return sorted(self._grids)

    def pop_frame(self, frame):
        """Finish a frame and get its survivors

        Parameters
        ----------
        frame : int
            Frame number

        Returns
        -------
        list of data.Candidate
            Candidates of `frame` that were not rejected
        """
        grid = self._grids.pop(frame, None)
        if grid is None:
            return []
        ret = grid.survivors()
        _logger.debug("Frame %d: %d of %d localizations are unique", frame,
                      len(ret), len(grid.candidates))
        return ret

    def finish(self):
        """Finish all frames and get survivors

        Returns
        -------
        list of data.Candidate
            Candidates that were not rejected, ordered by frame
        """
        ret = []
        for f in sorted(self._grids):
            ret.extend(self.pop_frame(f))
        return ret
