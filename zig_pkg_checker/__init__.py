# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Build checker for Zig packages.

The checker takes packages from the registry and builds each of them with
every supported Zig version, in throwaway Docker containers:

- Making sure a checker image exists for every Zig version.
- Running one container per package and version, and deciding from the
  build output whether the build and its tests really passed.
- Keeping the latest result of every package and version.
- Re-scheduling builds which never ran or got stuck.
"""

from importlib import metadata
import logging

from flask import Flask

from zig_pkg_checker.config import init_config
from zig_pkg_checker.errors import (
    NotFound, RecordNotFound, RuntimeUnavailable, json_error)
from zig_pkg_checker.logger import init_logging

try:
    version = metadata.version("zig-pkg-checker")
except metadata.PackageNotFoundError:
    version = "unknown"
api_version = 1

log = logging.getLogger(__name__)


def create_app(section=None, context=None):
    """ Creates the web application.

    :param str section: configuration section to load, see init_config
    :param AppContext context: use this context instead of creating one
    """
    from zig_pkg_checker.context import AppContext
    from zig_pkg_checker.views import register_views

    app = Flask(__name__)
    conf = init_config(app, section)
    if context is None:
        init_logging(conf)
        context = AppContext(conf)
        context.startup()
    app.extensions["zig_pkg_checker"] = context

    register_error_handlers(app)
    register_views(app)
    return app


def register_error_handlers(app):

    @app.errorhandler(NotFound)
    def notfound_error(e):
        """Flask error handler for NotFound exceptions"""
        return json_error(404, "Not Found", str(e))

    @app.errorhandler(RecordNotFound)
    def recordnotfound_error(e):
        return json_error(404, "Not Found", str(e))

    @app.errorhandler(RuntimeUnavailable)
    def runtimeunavailable_error(e):
        log.error("Refusing request, %s" % e)
        return json_error(503, "Service Unavailable", str(e))
