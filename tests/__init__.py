# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import json
import os

from flask import Flask
from mock import MagicMock

from zig_pkg_checker.config import init_config
from zig_pkg_checker.context import AppContext
from zig_pkg_checker.models import Package
from zig_pkg_checker.process import ProcessResult


def make_conf(**overrides):
    conf = init_config(Flask(__name__), "TestConfiguration")
    for key, value in overrides.items():
        conf.set_item(key, value)
    return conf


def make_runner(docker_available=True, image_exists=True):
    """ A ProcessRunner double where docker works and every container exits 0
    without writing a result file.
    """
    runner = MagicMock()
    if docker_available:
        runner.version.return_value = ProcessResult(0, "Docker version 27.3.1", "")
    else:
        runner.version.return_value = ProcessResult(1, "", "Cannot connect to the Docker daemon")
    runner.image_exists.return_value = image_exists
    runner.build_image.return_value = ProcessResult(0, "", "")
    runner.run_container.return_value = ProcessResult(0, "", "")
    runner.prune_containers.return_value = ProcessResult(0, "", "")
    return runner


def make_context(runner=None, **overrides):
    context = AppContext(make_conf(**overrides), runner=runner or make_runner())
    context.db.create_tables()
    return context


def host_result_file(conf, env):
    return os.path.join(conf.results_dir, "build_result_%s.json" % env["BUILD_ID"])


def write_result(conf, payload, stdout="", stderr="", returncode=0):
    """ Returns a run_container side effect which leaves `payload` behind
    the way the build container does.
    """
    def run_container(image, name, env, volumes, memory, cpus, label=None, timeout=None):
        with open(host_result_file(conf, env), "w") as f:
            if isinstance(payload, str):
                f.write(payload)
            else:
                json.dump(payload, f)
        return ProcessResult(returncode, stdout, stderr)
    return run_container


def init_data(db):
    """ Two packages, neither of them built yet. """
    with db.session_scope() as session:
        session.add(Package(
            id=42, name="zap", url="https://github.com/zigzap/zap",
            description="blazingly fast backends", author="zigzap", license="MIT"))
        session.add(Package(
            id=7, name="known-folders", url="https://github.com/ziglibs/known-folders",
            author="ziglibs", license="MIT"))
