# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Bounded channels connecting the stages of the localization pipeline

A :py:class:`Channel` is a bounded FIFO queue with a known number of
producers and consumers. Each producer calls :py:meth:`Channel.close` once
it is done. After the last producer closed the channel, every consumer
receives :py:class:`exceptions.ChannelClosed` once the remaining items are
consumed. End markers are internal to the channel and never mixed with
data items.

Blocking operations regularly check an abort event. If it is set,
:py:class:`exceptions.Interrupted` is raised.
"""
import queue
import threading

from .exceptions import ChannelClosed, Interrupted


class _End(object):
    def __repr__(self):
        return "<end of channel>"


_end = _End()


class Channel(object):
    """Bounded multi-producer, multi-consumer queue with close signal"""
    poll_interval = 0.1

    def __init__(self, maxsize=0, producers=1, consumers=1, abort=None):
        """Parameters
        ----------
        maxsize : int, optional
            Maximum number of items in the channel. `put` blocks if the
            channel is full. If 0, the size is unlimited. Defaults to 0.
        producers : int, optional
            Number of producers, i.e. number of :py:meth:`close` calls until
            the channel is closed. Defaults to 1.
        consumers : int, optional
            Number of consumers, i.e. number of end markers sent when the
            channel is closed. Defaults to 1.
        abort : threading.Event or None, optional
            If this is set, blocking operations raise
            :py:class:`exceptions.Interrupted`. If `None`, create a new
            event.
        """
        if producers < 1 or consumers < 1:
            raise ValueError("Need at least one producer and consumer.")
        # End markers must always fit, thus reserve space for them
        self._queue = queue.Queue(maxsize + consumers if maxsize > 0 else 0)
        self._maxsize = maxsize
        self._producers = producers
        self._consumers = consumers
        self._lock = threading.Lock()
        self._slots = (threading.BoundedSemaphore(maxsize) if maxsize > 0
                       else None)
        self.abort = abort if abort is not None else threading.Event()

    @property
    def closed(self):
        """Whether all producers closed the channel"""
        with self._lock:
            return self._producers <= 0

    def _wait(self, func):
        while True:
            if self.abort.is_set():
                raise Interrupted(self)
            try:
                return func()
            except (queue.Empty, queue.Full):
                continue

    def put(self, item):
        """Add an item, blocking while the channel is full

        Parameters
        ----------
        item
            Item to add

        Raises
        ------
        ValueError
            The channel was already closed.
        exceptions.Interrupted
            The abort event was set while waiting.
        """
        if self.closed:
            raise ValueError("Cannot put into a closed channel.")
        if self._slots is not None:
            def acquire():
                if not self._slots.acquire(timeout=self.poll_interval):
                    raise queue.Full
            self._wait(acquire)
        self._queue.put(item)

    def get(self):
        """Remove and return an item, blocking while the channel is empty

        Returns
        -------
        object
            Next item

        Raises
        ------
        exceptions.ChannelClosed
            The channel was closed and all items were consumed.
        exceptions.Interrupted
            The abort event was set while waiting.
        """
        item = self._wait(
            lambda: self._queue.get(timeout=self.poll_interval))
        if item is _end:
            raise ChannelClosed()
        if self._slots is not None:
            self._slots.release()
        return item

    def close(self):
        """Signal that a producer is done

        After all producers called this, each consumer gets an end marker.
        """
        with self._lock:
            if self._producers <= 0:
                raise ValueError("Channel was already closed.")
            self._producers -= 1
            last = self._producers == 0
        if last:
            for _ in range(self._consumers):
                self._queue.put(_end)

    def __iter__(self):
        """Yield items until the channel is closed"""
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return


class PartitionedChannel(object):
    """Distribute items to several channels according to a key

    Each item is put into ``channels[key(item) % len(channels)]``, thus all
    items with the same key end up in the same channel. Each child channel
    has exactly one consumer.
    """
    def __init__(self, partitions, key, maxsize=0, producers=1, abort=None):
        """Parameters
        ----------
        partitions : int
            Number of child channels
        key : callable
            Takes an item and returns an int
        maxsize : int, optional
            Maximum number of items per child channel. Defaults to 0, i.e.
            unlimited.
        producers : int, optional
            Number of producers. Defaults to 1.
        abort : threading.Event or None, optional
            Shared abort event of the child channels
        """
        self.abort = abort if abort is not None else threading.Event()
        self.channels = [Channel(maxsize, producers, 1, self.abort)
                         for _ in range(partitions)]
        self._key = key

    def put(self, item):
        """Add an item to the channel selected by its key"""
        self.channels[self._key(item) % len(self.channels)].put(item)

    def close(self):
        """Signal that a producer is done"""
        for c in self.channels:
            c.close()
