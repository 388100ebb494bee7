# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from os import environ, path
import tempfile

confdir = path.abspath(path.dirname(__file__))
# use parent dir as dbdir else fallback to current dir
dbdir = path.abspath(path.join(confdir, "..")) if confdir.endswith("conf") else confdir


class BaseConfiguration(object):
    DEBUG = False
    DB = "sqlite:///{0}".format(path.join(dbdir, "zig_pkg_checker.db"))
    # Where we should run when running "zig-pkg-checker-manager run" directly.
    HOST = "0.0.0.0"
    PORT = 5000

    LOG_BACKEND = "console"
    LOG_LEVEL = "info"

    DOCKER_CONTEXT_DIR = path.join(dbdir, "docker")
    RESULTS_DIR = "/tmp/zig_pkg_checker_results"


class TestConfiguration(BaseConfiguration):
    DEBUG = True
    LOG_LEVEL = "debug"
    DB = environ.get("DATABASE_URI", "sqlite://")

    RESULTS_DIR = path.join(tempfile.gettempdir(), "zig_pkg_checker_test_results")
    RESULT_SETTLE_TIME = 0
    RESULT_READ_TIMEOUT = 0
    CONTAINER_TIMEOUT = 5

    SCHEDULER_TICK = 0.01
    MISSING_BUILDS_INTERVAL = 1
    STALLED_BUILDS_INTERVAL = 1


class ProdConfiguration(BaseConfiguration):
    DOCKER_CONTEXT_DIR = "/usr/share/zig-pkg-checker/docker"
    MAX_CONCURRENT_BUILDS = 4


class DevConfiguration(BaseConfiguration):
    DEBUG = True
    LOG_LEVEL = "debug"
