# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Wires the long lived parts of the service together.

One AppContext is created per process, by the web application or by the
scheduler daemon, and handed to whoever needs it.
"""

import logging

from zig_pkg_checker.builder import BuildOrchestrator
from zig_pkg_checker.models import Database
from zig_pkg_checker.process import ProcessRunner
from zig_pkg_checker.scheduler.poller import RecoveryScheduler

log = logging.getLogger(__name__)


class AppContext(object):

    def __init__(self, conf, db=None, runner=None):
        self.conf = conf
        self.db = db or Database(conf)
        self.runner = runner or ProcessRunner(conf)
        self.orchestrator = BuildOrchestrator(conf, self.db, self.runner)
        self.scheduler = RecoveryScheduler(conf, self.orchestrator)

    def startup(self, create_tables=True, with_scheduler=False):
        """ Prepares the database and the build host.

        Docker being unavailable is not fatal here, the API reports it on
        every rebuild request.
        """
        if create_tables:
            self.db.create_tables()
        if self.orchestrator.check_runtime_available():
            self.orchestrator.cleanup()
        else:
            log.warning("Docker is not available, builds can't be scheduled")
        if with_scheduler:
            self.scheduler.start()

    def shutdown(self):
        if self.scheduler.is_running():
            self.scheduler.stop()
        self.db.engine.dispose()
