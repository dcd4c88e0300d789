# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Concurrent localization pipeline

The stages (detection, eccentricity rejection, fitting, third moment
rejection, duplicate removal) are connected by bounded
:py:class:`channel.Channel` instances. Each stage is run by a pool of worker
threads, and all stages run at the same time. Candidates are partitioned by
frame before duplicate removal so that each frame is handled by a single
worker. A frame's survivors are passed on as soon as all of its candidates
were either rejected by an earlier stage or arrived at duplicate removal.
"""
import collections
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from . import config
from .channel import Channel, PartitionedChannel
from .data import stages
from .duplicates import DuplicateRemover
from .eccentricity import EccentricityRejector
from .exceptions import Interrupted
from .find import find
from .fit import Localizer
from .noise import make_estimator
from .third_moment import ThirdMomentRejector


_logger = logging.getLogger(__name__)


StageStats = collections.namedtuple("StageStats", ["received", "kept"])
# Sent to duplicate removal when an earlier stage rejected the last pending
# candidate of a frame
FrameDone = collections.namedtuple("FrameDone", ["frame"])


class FrameTracker(object):
    """Count candidates of each frame that are still in flight

    All methods are thread-safe.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._pending = {}

    def expect(self, frame, count):
        """Register the number of candidates detected in a frame"""
        if count < 1:
            return
        with self._lock:
            self._pending[frame] = count

    def resolve(self, frame):
        """Mark one candidate of a frame as done

        A candidate is done when it was rejected or when it arrived at the
        last stage.

        Parameters
        ----------
        frame : int
            Frame number

        Returns
        -------
        bool
            `True` if this was the last pending candidate of `frame`
        """
        with self._lock:
            n = self._pending[frame] - 1
            if n > 0:
                self._pending[frame] = n
                return False
            del self._pending[frame]
            return True

    @property
    def pending(self):
        """Frames with candidates in flight"""
        with self._lock:
            return sorted(self._pending)


class Pipeline(object):
    """Localize emitters in all frames of a stack

    Examples
    --------
    >>> stack = FrameStack(frames)
    >>> p = Pipeline(stack, Settings(snr_cutoff=5))
    >>> candidates = p.run()

    From a different thread, a running pipeline can be stopped using
    :py:meth:`abort`.
    """
    @config.use_defaults
    def __init__(self, stack, settings=None, num_threads=None,
                 queue_size=None):
        """Parameters
        ----------
        stack : frames.FrameStack
            Image data
        settings : config.Settings or None, optional
            Localization settings. If `None`, use defaults.
        num_threads : int or None, optional
            Number of worker threads per stage. If `None`, use the value from
            :py:attr:`config.rc`, which defaults to the number of CPUs.
        queue_size : int or None, optional
            Maximum number of items in each channel. If `None`, use the value
            from :py:attr:`config.rc`.
        """
        self.stack = stack
        self.settings = settings if settings is not None else config.Settings()
        self.num_threads = max(1, int(num_threads))
        self.queue_size = queue_size

        self._abort = threading.Event()
        self._stats_lock = threading.Lock()
        self._stats = {}
        self._tracker = FrameTracker()

        s = self.settings
        self._noise_estimator = make_estimator(s)
        self._stages = [
            (stages.eccentricity, EccentricityRejector.from_settings(s)),
            (stages.localize, Localizer(s)),
            (stages.third_moment, ThirdMomentRejector.from_settings(s))]

    @property
    def stats(self):
        """Number of received and kept candidates for each stage"""
        with self._stats_lock:
            return {k: StageStats(*v) for k, v in self._stats.items()}

    def _count(self, stage, received, kept):
        with self._stats_lock:
            r, k = self._stats.get(stage, (0, 0))
            self._stats[stage] = (r + received, k + kept)

    def abort(self):
        """Stop all workers

        :py:meth:`run` will return the candidates collected so far.
        """
        self._abort.set()

    @property
    def aborted(self):
        return self._abort.is_set()

    def _worker(self, name, func, source, sink):
        try:
            func(source, sink)
        except Interrupted:
            _logger.warning("%s worker was interrupted.", name)
        except Exception:
            self._abort.set()
            raise
        finally:
            sink.close()

    def _feed(self, source, sink):
        for i in range(len(self.stack)):
            sink.put(i)

    def _detect(self, source, sink):
        s = self.settings
        for i in source:
            photons = self.stack.photons(i)
            noise = self._noise_estimator(photons)
            cands = find(photons, noise, s.snr_cutoff, i, s.border_margin)
            if noise.is_global:
                _logger.debug("Frame %d: noise %g, %d candidates", i,
                              noise.at(0, 0), len(cands))
            self._count("find", 1, len(cands))
            # Counts need to be known before the first candidate can be
            # resolved downstream
            self._tracker.expect(i, len(cands))
            for c in cands:
                sink.put(c)

    def _make_filter(self, stage, func, done):
        """Create a worker function for a rejection or fitting stage

        Parameters
        ----------
        stage : str
            Stage name for statistics
        func : callable
            Takes the frame stack and a candidate, returns whether to keep
            the candidate.
        done : callable
            Called with the frame number if a rejected candidate was the last
            pending one of its frame.
        """
        def run(source, sink):
            for c in source:
                kept = func(self.stack, c)
                self._count(stage, 1, int(kept))
                if kept:
                    sink.put(c)
                elif self._tracker.resolve(c.frame):
                    done(c.frame)
        return run

    def _remove_duplicates(self, source, sink):
        remover = DuplicateRemover(self.stack.shape,
                                   self.settings.duplicate_radius)

        def flush(frame):
            survivors = remover.pop_frame(frame)
            self._count(stages.duplicates, 0, len(survivors))
            for c in survivors:
                sink.put(c)

        for item in source:
            if isinstance(item, FrameDone):
                flush(item.frame)
                continue
            remover.add(item)
            self._count(stages.duplicates, 1, 0)
            if self._tracker.resolve(item.frame):
                flush(item.frame)
        for f in remover.open_frames:
            _logger.warning("Frame %d was not complete when input ended.", f)
            flush(f)

    def run(self):
        """Run the pipeline

        Statistics and the abort flag are reset at the start, so the same
        instance can be run again.

        Returns
        -------
        list of data.Candidate
            Surviving candidates, sorted by frame, then y and x coordinate
        """
        with self._stats_lock:
            self._stats = {}
        self._abort.clear()
        self._tracker = FrameTracker()

        n = self.num_threads
        qs = self.queue_size
        ab = self._abort

        frames = Channel(qs, 1, n, ab)
        chans = [Channel(qs, n, n, ab) for _ in self._stages]
        parts = PartitionedChannel(n, lambda c: c.frame, qs, n, ab)
        results = Channel(0, n, 1, ab)

        def done(frame):
            parts.put(FrameDone(frame))

        jobs = [("feeder", self._feed, None, frames)]
        jobs.extend(("find", self._detect, frames, chans[0])
                    for _ in range(n))
        for (name, func), src, dst in zip(
                self._stages, chans, chans[1:] + [parts]):
            jobs.extend((name, self._make_filter(name, func, done), src, dst)
                        for _ in range(n))
        jobs.extend((stages.duplicates, self._remove_duplicates, c, results)
                    for c in parts.channels)

        ret = []
        with ThreadPoolExecutor(max_workers=len(jobs)) as e:
            futures = [e.submit(self._worker, *j) for j in jobs]
            try:
                for c in results:
                    ret.append(c)
            except Interrupted:
                _logger.warning("Localization was aborted.")
            # Raise exceptions from workers, if any
            for f in futures:
                f.result()

        for k, v in self.stats.items():
            _logger.info("%s: %d received, %d kept", k, v.received, v.kept)

        ret.sort(key=lambda c: (c.frame, c.y_est, c.x_est))
        return ret
