# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""The recovery daemon.

Runs the sweeps of zig_pkg_checker.scheduler.poller without the web
application, until it gets SIGINT or SIGTERM.
"""

import logging
import signal
import threading

from flask import Flask

from zig_pkg_checker.config import init_config
from zig_pkg_checker.context import AppContext
from zig_pkg_checker.logger import init_logging

log = logging.getLogger(__name__)


def run(context, stop=None):
    """ Runs the recovery scheduler of `context` until `stop` is set. """
    if stop is None:
        stop = threading.Event()

    def handler(signum, frame):
        log.info("Received signal %r, shutting down" % signum)
        stop.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, handler)
        signal.signal(signal.SIGINT, handler)

    context.scheduler.start()
    try:
        while not stop.wait(1):
            pass
    finally:
        context.shutdown()


def main():
    app = Flask(__name__)
    conf = init_config(app)
    init_logging(conf)
    log.info("Starting the zig-pkg-checker recovery daemon.")
    context = AppContext(conf)
    context.startup()
    run(context)
