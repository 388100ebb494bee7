# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Periodic sweeps over the build results.

Builds get lost: the service restarts while a worker runs, a package is added
without ever being built, or a container hangs. Two pollers catch that:

  * MissingBuildSweep schedules builds of packages lacking a result for some
    Zig version.
  * StalledBuildSweep re-schedules packages with builds pending for too long.

Both run right away when started and then every `interval` seconds, until
the scheduler is stopped.
"""

import logging
import threading
import time

from zig_pkg_checker.errors import BuildSystemError, RuntimeUnavailable

log = logging.getLogger(__name__)


class Sweep(threading.Thread):
    """ Calls `sweep()` every `interval` seconds while `running` is set. """

    name_prefix = "sweep"

    def __init__(self, orchestrator, running, interval, tick, *args, **kwargs):
        self.orchestrator = orchestrator
        self.running = running
        self.interval = interval
        self.tick = tick
        kwargs.setdefault("name", self.name_prefix)
        kwargs.setdefault("daemon", True)
        super(Sweep, self).__init__(*args, **kwargs)

    def run(self):
        log.info("Starting %s, running every %rs" % (self.name, self.interval))
        while self.running.is_set():
            try:
                self.sweep()
            except Exception:
                log.exception("Failed while running %s" % self.name)

            next_run = time.monotonic() + self.interval
            while self.running.is_set() and time.monotonic() < next_run:
                time.sleep(min(self.tick, max(0, next_run - time.monotonic())))
        log.info("%s stopped" % self.name)

    def sweep(self):
        raise NotImplementedError()

    def rebuild(self, package):
        """ Schedules builds of `package`, returns True if they were scheduled.

        RuntimeUnavailable is left to the caller, nothing can be scheduled
        until Docker is back.
        """
        try:
            self.orchestrator.start_package_builds(package.id, package.name, package.url)
        except RuntimeUnavailable:
            raise
        except BuildSystemError as e:
            log.error("Failed to schedule builds of %r: %s" % (package, e))
            return False
        return True

    def rebuild_all(self, packages):
        scheduled = 0
        for package in packages:
            if not self.running.is_set():
                break
            try:
                if self.rebuild(package):
                    scheduled += 1
            except RuntimeUnavailable as e:
                log.error("Docker unavailable, stopping %s pass: %s" % (self.name, e))
                break
        return scheduled


class MissingBuildSweep(Sweep):
    name_prefix = "missing-build-sweep"

    def sweep(self):
        log.info("Looking for packages with missing builds.")
        scheduled = self.rebuild_all(self._incomplete_packages())
        log.info("Scheduled builds of %d packages with missing builds." % scheduled)
        return scheduled

    def _incomplete_packages(self):
        for package in self.orchestrator.get_packages():
            missing = self.orchestrator.get_missing_builds_for_package(package.id)
            if missing:
                log.info("  %r has no builds for %s" % (package, ", ".join(missing)))
                yield package


class StalledBuildSweep(Sweep):
    name_prefix = "stalled-build-sweep"

    def __init__(self, orchestrator, running, interval, tick, threshold, *args, **kwargs):
        self.threshold = threshold
        super(StalledBuildSweep, self).__init__(
            orchestrator, running, interval, tick, *args, **kwargs)

    def sweep(self):
        log.info("Looking for builds pending for more than %rs." % self.threshold)
        stalled = self.orchestrator.get_stalled_builds(self.threshold)
        log.info(" %d stalled builds found." % len(stalled))

        package_ids = []
        for build in stalled:
            if build.package_id not in package_ids:
                package_ids.append(build.package_id)

        scheduled = self.rebuild_all(self._packages(package_ids))
        log.info("Re-scheduled builds of %d packages with stalled builds." % scheduled)
        return scheduled

    def _packages(self, package_ids):
        for package_id in package_ids:
            package = self.orchestrator.get_package(package_id)
            if package is None:
                log.warning("Package %r of a stalled build is gone" % package_id)
                continue
            yield package


class RecoveryScheduler(object):
    """ Owns the sweeps and the flag keeping them alive. """

    def __init__(self, config, orchestrator):
        self.config = config
        self.orchestrator = orchestrator
        self.running = threading.Event()
        self.sweeps = []

    def _create_sweeps(self):
        tick = self.config.scheduler_tick
        return [
            MissingBuildSweep(self.orchestrator, self.running,
                              self.config.missing_builds_interval, tick),
            StalledBuildSweep(self.orchestrator, self.running,
                              self.config.stalled_builds_interval, tick,
                              self.config.stalled_build_threshold),
        ]

    def is_running(self):
        return self.running.is_set()

    def start(self):
        if self.running.is_set():
            log.warning("Recovery scheduler is already running")
            return
        log.info("Starting the recovery scheduler")
        self.running.set()
        self.sweeps = self._create_sweeps()
        for sweep in self.sweeps:
            sweep.start()

    def stop(self, timeout=None):
        """ Stops the sweeps and waits for them. A sweep in the middle of a
        pass finishes the package it is scheduling first.
        """
        log.info("Stopping the recovery scheduler")
        self.running.clear()
        for sweep in self.sweeps:
            sweep.join(timeout)
        self.sweeps = []
