# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import collections
import threading

from mock import MagicMock, call

from zig_pkg_checker.errors import PersistenceFailure, RuntimeUnavailable
from zig_pkg_checker.scheduler.poller import (
    MissingBuildSweep, RecoveryScheduler, StalledBuildSweep)
from tests import make_conf

PackageStub = collections.namedtuple("PackageStub", ["id", "name", "url"])
BuildStub = collections.namedtuple("BuildStub", ["package_id", "zig_version"])

ZAP = PackageStub(42, "zap", "https://github.com/zigzap/zap")
FOLDERS = PackageStub(7, "known-folders", "https://github.com/ziglibs/known-folders")
HTTPZ = PackageStub(9, "httpz", "https://github.com/karlseguin/http.zig")


class TestMissingBuildSweep:

    def setup_method(self, test_method):
        self.orchestrator = MagicMock()
        self.orchestrator.get_packages.return_value = [ZAP, FOLDERS, HTTPZ]
        self.running = threading.Event()
        self.running.set()
        self.sweep = MissingBuildSweep(self.orchestrator, self.running, 3600, 0.01)

    def test_schedules_packages_with_missing_builds(self):
        missing = {42: ["master"], 7: [], 9: ["0.13.0", "0.12.0"]}
        self.orchestrator.get_missing_builds_for_package.side_effect = missing.get

        assert self.sweep.sweep() == 2

        assert self.orchestrator.start_package_builds.call_args_list == [
            call(42, "zap", ZAP.url),
            call(9, "httpz", HTTPZ.url),
        ]

    def test_stops_when_docker_is_gone(self):
        self.orchestrator.get_missing_builds_for_package.return_value = ["master"]
        self.orchestrator.start_package_builds.side_effect = RuntimeUnavailable("gone")

        assert self.sweep.sweep() == 0
        assert self.orchestrator.start_package_builds.call_count == 1

    def test_continues_after_other_errors(self):
        self.orchestrator.get_missing_builds_for_package.return_value = ["master"]
        self.orchestrator.start_package_builds.side_effect = [
            PersistenceFailure("locked", package_id=42), None, None]

        assert self.sweep.sweep() == 2
        assert self.orchestrator.start_package_builds.call_count == 3

    def test_stops_when_scheduler_stops(self):
        self.orchestrator.get_missing_builds_for_package.return_value = ["master"]
        self.running.clear()

        self.sweep.sweep()
        assert not self.orchestrator.start_package_builds.called


class TestStalledBuildSweep:

    def setup_method(self, test_method):
        self.orchestrator = MagicMock()
        self.running = threading.Event()
        self.running.set()
        self.sweep = StalledBuildSweep(self.orchestrator, self.running, 1800, 0.01, 7200)

    def test_reschedules_each_package_once(self):
        self.orchestrator.get_stalled_builds.return_value = [
            BuildStub(42, "master"), BuildStub(42, "0.14.0"), BuildStub(7, "0.12.0")]
        self.orchestrator.get_package.side_effect = {42: ZAP, 7: FOLDERS}.get

        assert self.sweep.sweep() == 2

        self.orchestrator.get_stalled_builds.assert_called_once_with(7200)
        assert self.orchestrator.start_package_builds.call_args_list == [
            call(42, "zap", ZAP.url),
            call(7, "known-folders", FOLDERS.url),
        ]

    def test_skips_deleted_packages(self):
        self.orchestrator.get_stalled_builds.return_value = [BuildStub(13, "master")]
        self.orchestrator.get_package.return_value = None

        assert self.sweep.sweep() == 0
        assert not self.orchestrator.start_package_builds.called

    def test_stops_when_docker_is_gone(self):
        self.orchestrator.get_stalled_builds.return_value = [
            BuildStub(42, "master"), BuildStub(7, "master")]
        self.orchestrator.get_package.side_effect = {42: ZAP, 7: FOLDERS}.get
        self.orchestrator.start_package_builds.side_effect = RuntimeUnavailable("gone")

        assert self.sweep.sweep() == 0
        assert self.orchestrator.start_package_builds.call_count == 1


class TestRecoveryScheduler:

    def setup_method(self, test_method):
        self.conf = make_conf(missing_builds_interval=3600, stalled_builds_interval=3600)
        self.orchestrator = MagicMock()
        self.orchestrator.get_stalled_builds.return_value = []
        self.scheduler = RecoveryScheduler(self.conf, self.orchestrator)

    def teardown_method(self, test_method):
        if self.scheduler.is_running():
            self.scheduler.stop()

    def test_sweeps_run_right_away(self):
        missing_swept = threading.Event()
        stalled_swept = threading.Event()

        def get_packages():
            missing_swept.set()
            return []

        def get_stalled_builds(threshold):
            stalled_swept.set()
            return []

        self.orchestrator.get_packages.side_effect = get_packages
        self.orchestrator.get_stalled_builds.side_effect = get_stalled_builds

        self.scheduler.start()

        assert missing_swept.wait(5)
        assert stalled_swept.wait(5)

    def test_stop(self):
        self.scheduler.start()
        sweeps = list(self.scheduler.sweeps)
        assert self.scheduler.is_running()
        assert all(sweep.is_alive() for sweep in sweeps)

        self.scheduler.stop(timeout=5)

        assert not self.scheduler.is_running()
        assert not any(sweep.is_alive() for sweep in sweeps)

    def test_sweep_errors_do_not_kill_the_thread(self):
        swept_twice = threading.Event()
        calls = []

        def get_packages():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database went away")
            swept_twice.set()
            return []

        self.conf.missing_builds_interval = 0
        self.orchestrator.get_packages.side_effect = get_packages
        self.scheduler.start()

        assert swept_twice.wait(5)
        assert all(sweep.is_alive() for sweep in self.scheduler.sweeps)
