# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Maximum likelihood localization of single fluorescent emitters
==============================================================

This package locates fluorescent point emitters in image sequences with
subpixel accuracy. Each frame is processed in several stages:

- noise estimation (:py:mod:`m2le.noise`),
- detection of bright pixels (:py:mod:`m2le.find`),
- rejection of elongated features (:py:mod:`m2le.eccentricity`),
- maximum likelihood fitting of a pixel-integrated Gaussian along the x and
  y axes (:py:mod:`m2le.fit`),
- optional rejection of asymmetric features (:py:mod:`m2le.third_moment`),
- removal of duplicate localizations (:py:mod:`m2le.duplicates`).

The stages are connected by bounded channels and run concurrently in a
thread pool (:py:mod:`m2le.pipeline`).

Similar to other localization packages, there is a :py:func:`locate`
function for a single image and a :py:func:`batch` function for a series of
images.


Examples
--------

Simulate an image with a single emitter and localize it:

>>> img = m2le.sim.simulate_spots((32, 32), [[15.3, 16.7]], 3000., 1.) + 10
>>> m2le.locate(img.astype(np.uint16))
   frame          x          y  ...
0      0  15.300000  16.700000  ...


Programming reference
---------------------

.. autofunction:: locate
.. autofunction:: batch
.. autoclass:: Settings
    :members:
"""
from .config import Settings  # noqa: F401
from .api import locate, batch, to_dataframe  # noqa: F401
from .frames import FrameStack  # noqa: F401
from . import sim  # noqa: F401
