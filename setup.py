#!/usr/bin/python3
# Setup file for lfsgate
# Copyright (C) 2026 The lfsgate Authors
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

setup(
    name="lfsgate",
    version="0.1.0",
    description="Git LFS pre-push gate",
    long_description=(
        "Uploads the Git LFS objects referenced by a push to the remote LFS "
        "store, refusing the push when an object cannot be supplied."
    ),
    license="Apache-2.0 OR GPL-2.0-or-later",
    python_requires=">=3.10",
    packages=["lfsgate"],
    package_data={"": ["py.typed"]},
    install_requires=["urllib3>=2.2.2"],
    entry_points={"console_scripts": ["lfsgate=lfsgate.cli:main"]},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
    ],
)
