# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Utility functions for zig_pkg_checker. """
from datetime import datetime, timezone
import functools
import logging
import time

log = logging.getLogger(__name__)


def retry(timeout=120, interval=30, wait_on=Exception):
    """ A decorator that allows to retry a section of code...
    ...until success or timeout.
    """
    def wrapper(function):
        @functools.wraps(function)
        def inner(*args, **kwargs):
            start = time.time()
            while True:
                try:
                    return function(*args, **kwargs)
                except wait_on as e:
                    if (time.time() - start) >= timeout:
                        raise
                    log.warning("Exception %r raised from %r.  Retry in %rs" % (
                        e, function, interval))
                    time.sleep(interval)
        return inner
    return wrapper


def utcnow():
    """ Naive UTC timestamp, the way build results store last_checked. """
    return datetime.now(timezone.utc).replace(tzinfo=None)
