# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" The package build checker's public RESTful API. """

import logging

from flask import current_app, jsonify
from flask.views import MethodView

from zig_pkg_checker.errors import NotFound

log = logging.getLogger(__name__)

api_prefix = "/zig-pkg-checker/1"


def get_context():
    return current_app.extensions["zig_pkg_checker"]


def _get_package(orchestrator, package_id):
    package = orchestrator.get_package(package_id)
    if package is None:
        raise NotFound("No such package found.")
    return package


class PackageBuildsAPI(MethodView):

    def get(self, package_id):
        orchestrator = get_context().orchestrator
        _get_package(orchestrator, package_id)
        items = [build.json() for build in orchestrator.get_build_results(package_id)]
        missing = orchestrator.get_missing_builds_for_package(package_id)
        return jsonify({"items": items, "missing": missing}), 200


class PackageRebuildAPI(MethodView):

    def post(self, package_id):
        orchestrator = get_context().orchestrator
        package = _get_package(orchestrator, package_id)
        orchestrator.start_package_builds(package.id, package.name, package.url)
        log.info("Scheduled rebuild of %r" % package)
        return jsonify({
            "package": package.json(),
            "versions": list(orchestrator.versions),
        }), 202


def register_views(app):
    """ Registers version 1 of the API. """
    builds_view = PackageBuildsAPI.as_view("package_builds")
    rebuild_view = PackageRebuildAPI.as_view("package_rebuild")
    app.add_url_rule(api_prefix + "/packages/<int:package_id>/builds",
                     view_func=builds_view, methods=["GET"])
    app.add_url_rule(api_prefix + "/packages/<int:package_id>/rebuild",
                     view_func=rebuild_view, methods=["POST"])
