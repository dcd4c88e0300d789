# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

from setuptools import setup, find_packages


setup(
    name="m2le",
    version="1.0.0",
    description="Maximum likelihood localization of single fluorescent "
                "emitters",
    python_requires=">=3.9",
    install_requires=["numpy>=1.10",
                      "pandas",
                      "scipy>0.18",
                      "tifffile>=0.14.0",
                      "pyyaml", ],
    extras_require={"test": ["pytest"]},
    packages=find_packages(include=["m2le*"]),
)
