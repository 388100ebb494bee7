# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""
Logging functions.

At the beginning of the zig-pkg-checker flow, the following has to be executed
to initialize the logging:

    init_logging(conf)

After that, anywhere in the code the standard way applies:

    import logging
    log = logging.getLogger(__name__)
    log.info("Message")
"""

import logging

levels = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

log_format = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"


def str_to_log_level(level):
    """
    Returns internal representation of logging level defined
    by the string `level`.

    Available levels are: debug, info, warning, error, critical
    """
    if not level:
        return logging.NOTSET

    if level not in levels:
        raise ValueError("Unsupported log level %r" % level)

    return levels[level]


def supported_log_backends():
    return ("console", "file")


def init_logging(conf):
    """
    Initializes logging according to configuration file.
    """
    log_backend = conf.log_backend

    if not log_backend or log_backend == "console":
        logging.basicConfig(level=conf.log_level, format=log_format)
        log = logging.getLogger()
        log.setLevel(conf.log_level)
    else:
        logging.basicConfig(filename=conf.log_file, level=conf.log_level,
                            format=log_format)
        log = logging.getLogger()
        log.setLevel(conf.log_level)
