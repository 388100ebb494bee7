# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" The Zig toolchain versions every package is checked against.

The order matters: a package's versions are always built one after another
in this order.
"""

import os

ZIG_VERSIONS = (
    "master",
    "0.14.0",
    "0.13.0",
    "0.12.0",
)

DEFAULT_IMAGE_PREFIX = "zig-checker"


def is_known(version):
    return version in ZIG_VERSIONS


def _check(version):
    if not is_known(version):
        raise ValueError("%r is not a supported Zig version, not in %r" % (
            version, ZIG_VERSIONS))


def image_name(version, prefix=DEFAULT_IMAGE_PREFIX):
    """ Returns the Docker image name for a Zig version, e.g. zig-checker:0.14.0 """
    _check(version)
    return "%s:%s" % (prefix, version)


def build_context(version, docker_context_dir="docker"):
    """ Returns the directory the image for a Zig version is built from. """
    _check(version)
    return os.path.join(docker_context_dir, "zig-%s" % version)
