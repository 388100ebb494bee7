# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""The build orchestrator.

Takes a package, makes sure there is a Docker image for every supported Zig
version, and builds the package in one container per version. All versions
of one package are built one after another by a single background thread;
different packages build in parallel.

Every read and write of the build results goes through one lock shared by
the build threads, the recovery sweeps and the API.
"""

import contextlib
from datetime import timedelta
import glob
import logging
import os
import threading
import time
import uuid

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from zig_pkg_checker import catalog, interpreter
from zig_pkg_checker.errors import (
    BuildSystemError, ContainerExecutionFailed, ImageBuildFailed,
    PersistenceFailure, ProcessLaunchFailed, RecordNotFound,
    ResultFileUnreadable, RuntimeUnavailable)
from zig_pkg_checker.models import BuildResult, Package
from zig_pkg_checker.utils import retry, utcnow

log = logging.getLogger(__name__)

RESULT_FILE_PREFIX = "build_result_"
RESULT_FILE_SUFFIX = ".json"


class JobContext(object):
    """ Names and paths of one build of one package with one Zig version.

    The random token keeps jobs started within the same second apart.
    """

    def __init__(self, config, package_id, version, timestamp=None, token=None):
        if timestamp is None:
            timestamp = int(time.time())
        if token is None:
            token = uuid.uuid4().hex[:8]
        self.build_id = "%s-%s-%d-%s" % (package_id, version, timestamp, token)
        self.container_name = "%s-%s" % (config.container_name_prefix, self.build_id)
        result_file = "%s%s%s" % (RESULT_FILE_PREFIX, self.build_id, RESULT_FILE_SUFFIX)
        self.host_result_file = os.path.join(config.results_dir, result_file)
        self.container_result_file = "%s/%s" % (
            config.container_results_dir.rstrip("/"), result_file)

    def __repr__(self):
        return "<JobContext %s>" % self.build_id


class PackageBuildRun(object):
    """ Everything a background worker needs to build one package. """

    def __init__(self, package_id, package_name, repo_url, versions, ready_versions=None):
        self.package_id = package_id
        self.package_name = str(package_name)
        self.repo_url = str(repo_url)
        self.versions = tuple(versions)
        if ready_versions is None:
            ready_versions = self.versions
        self.ready_versions = frozenset(ready_versions)

    def __repr__(self):
        return "<PackageBuildRun %s (%r), versions %r>" % (
            self.package_name, self.package_id, self.versions)


class PackageBuildWorker(threading.Thread):
    """ Builds all versions of one package, one at a time. """

    def __init__(self, orchestrator, build_run, *args, **kwargs):
        self.orchestrator = orchestrator
        self.build_run = build_run
        kwargs.setdefault("name", "build-%s" % build_run.package_id)
        kwargs.setdefault("daemon", True)
        super(PackageBuildWorker, self).__init__(*args, **kwargs)

    def run(self):
        run = self.build_run
        log.debug("Starting builds of %r" % run)
        with self.orchestrator.build_slot():
            for version in run.versions:
                log.info("Processing build for %s with Zig %s" % (run.package_name, version))
                try:
                    self.orchestrator.execute_one_version(
                        run.package_id, run.package_name, run.repo_url, version,
                        image_ready=version in run.ready_versions)
                except Exception:
                    log.exception("Build of package %r with Zig %s failed" % (
                        run.package_id, version))
                    try:
                        self.orchestrator.persist_result(
                            run.package_id, version, "failed", None,
                            "Threaded build execution failed")
                    except BuildSystemError as e:
                        log.error("Failed to record the failure: %s" % e)
        log.debug("Done with builds of %r" % run)


class BuildOrchestrator(object):
    """ Schedules, runs and records package builds. """

    def __init__(self, config, db, runner, versions=catalog.ZIG_VERSIONS):
        self.config = config
        self.db = db
        self.runner = runner
        self.versions = tuple(versions)
        self.db_lock = threading.Lock()
        self.started_at = time.time()
        if config.max_concurrent_builds:
            self._build_slots = threading.BoundedSemaphore(config.max_concurrent_builds)
        else:
            self._build_slots = None

    def build_slot(self):
        """ Context manager held by a worker while it runs containers. """
        if self._build_slots is None:
            return contextlib.nullcontext()
        return self._build_slots

    def image_name(self, version):
        return catalog.image_name(version, self.config.image_prefix)

    # Docker

    def check_runtime_available(self):
        """ Returns True if the docker command works, never raises. """
        log.info("Checking Docker availability...")
        try:
            result = self.runner.version()
        except BuildSystemError as e:
            log.error("Failed to execute '%s --version': %s" % (self.config.docker_binary, e))
            return False

        available = result.returncode == 0
        if not available:
            log.error("Docker command failed - exit code: %r, stderr: %s" % (
                result.returncode, result.stderr))
        else:
            log.debug("Docker is available: %s" % result.stdout.strip())
        return available

    def _build_image(self, version):
        image = self.image_name(version)
        context_dir = catalog.build_context(version, self.config.docker_context_dir)
        log.info("Building Docker image %s from %s..." % (image, context_dir))
        try:
            result = self.runner.build_image(image, context_dir)
        except BuildSystemError as e:
            raise ImageBuildFailed("Failed to run docker build for %s" % image,
                                   version=version, cause=e)
        if result.returncode != 0:
            if result.stdout:
                log.debug("docker build stdout: %s" % result.stdout)
            raise ImageBuildFailed(
                "docker build of %s exited with %r: %s" % (
                    image, result.returncode, result.stderr.strip()),
                version=version)
        log.info("Successfully built Docker image %s" % image)

    def ensure_image(self, version):
        """ Builds the image for `version` unless it exists already.

        Failures are logged, not raised. Returns True if the image is there.
        """
        image = self.image_name(version)
        try:
            if self.runner.image_exists(image):
                log.debug("Docker image %s already exists" % image)
                return True
            log.info("Docker image %s not found, building it now" % image)
            self._build_image(version)
        except BuildSystemError as e:
            log.error("Failed to ensure Docker image for Zig %s: %s" % (version, e))
            return False
        return True

    def ensure_images(self):
        return set(version for version in self.versions if self.ensure_image(version))

    # Scheduling

    def start_package_builds(self, package_id, package_name, repo_url):
        """ Schedules builds of a package with every Zig version.

        When this returns, every version has a pending build result; the
        builds themselves run in a background thread, which is returned.

        :raises RuntimeUnavailable: Docker can't be used
        :raises RecordNotFound: the package doesn't exist
        :raises PersistenceFailure: the pending results couldn't be stored
        """
        if not self.check_runtime_available():
            log.error("Docker not available, cannot start builds for package %s" % package_name)
            raise RuntimeUnavailable("Docker is not available", package_id=package_id)

        log.info("Ensuring Docker images are available for package %s..." % package_name)
        ready_versions = self.ensure_images()

        for version in self.versions:
            self.mark_pending(package_id, version)

        build_run = PackageBuildRun(package_id, package_name, repo_url,
                                    self.versions, ready_versions)
        worker = PackageBuildWorker(self, build_run)
        worker.start()
        log.info("Started builds for %s across %d Zig versions in background thread" % (
            package_name, len(self.versions)))
        return worker

    def execute_one_version(self, package_id, package_name, repo_url, version,
                            image_ready=True):
        """ Builds a package with one Zig version and records the outcome.

        Every failure is recorded as a failed build; only errors storing the
        result are raised.

        :return: interpreter.BuildOutcome
        """
        if not image_ready:
            outcome = interpreter.BuildOutcome(
                "failed", None,
                "Docker image %s is not available" % self.image_name(version))
            self.persist_result(package_id, version, *outcome)
            return outcome

        job = JobContext(self.config, package_id, version)
        results_dir = self.config.results_dir
        try:
            os.makedirs(results_dir, exist_ok=True)
        except OSError as e:
            log.error("Failed to create results directory %s: %s" % (results_dir, e))
            outcome = interpreter.BuildOutcome(
                "failed", None, "Failed to prepare the build results directory")
            self.persist_result(package_id, version, *outcome)
            return outcome

        log.info("Executing Docker build for %s with Zig %s (build_id: %s)" % (
            package_name, version, job.build_id))
        env = {
            "REPO_URL": repo_url,
            "PACKAGE_NAME": package_name,
            "BUILD_ID": job.build_id,
            "RESULT_FILE": job.container_result_file,
        }
        try:
            result = self.runner.run_container(
                self.image_name(version), job.container_name, env,
                {results_dir: self.config.container_results_dir},
                self.config.container_memory, self.config.container_cpus,
                label=self.config.container_label,
                timeout=self.config.container_timeout or None)
        except (ProcessLaunchFailed, ContainerExecutionFailed) as e:
            log.error("Docker build %s failed: %s" % (job.build_id, e))
            outcome = interpreter.BuildOutcome("failed", None, e.message)
            self.persist_result(package_id, version, *outcome)
            self._remove_result_file(job)
            return outcome

        if result.returncode != 0:
            log.error("Docker container %s exited with %r, stderr: %s" % (
                job.container_name, result.returncode, result.stderr))
            outcome = interpreter.BuildOutcome(
                "failed", None,
                interpreter.extract_container_error(result.stdout, result.stderr))
            self.persist_result(package_id, version, *outcome)
            self._remove_result_file(job)
            return outcome

        log.info("Docker container completed successfully for build %s" % job.build_id)
        if self.config.result_settle_time:
            time.sleep(self.config.result_settle_time)

        try:
            try:
                content = self._read_result_file(job)
            except ResultFileUnreadable as e:
                log.error("Failed to process build result file: %s" % e)
                outcome = interpreter.BuildOutcome(
                    "failed", None, "Failed to process result file")
            else:
                outcome = interpreter.interpret_result(content, result.stdout, result.stderr)
                log.debug("Build %s interpreted as %r" % (job.build_id, outcome))
            self.persist_result(package_id, version, *outcome)
        finally:
            self._remove_result_file(job)
        return outcome

    def _read_result_file(self, job):
        @retry(timeout=self.config.result_read_timeout, interval=1,
               wait_on=FileNotFoundError)
        def read():
            with open(job.host_result_file, "r", encoding="utf-8", errors="replace") as f:
                return f.read()

        try:
            content = read()
        except OSError as e:
            raise ResultFileUnreadable(
                "Can't read %s" % job.host_result_file, cause=e)
        if not content.strip():
            log.warning("Build result file %s is empty" % job.host_result_file)
        return content

    def _remove_result_file(self, job):
        try:
            os.remove(job.host_result_file)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("Failed to cleanup result file %s: %s" % (job.host_result_file, e))

    # Persistence

    def _write(self, package_id, version, build_status, test_status, error_log):
        with self.db_lock:
            try:
                with self.db.session_scope() as session:
                    if Package.get_by_id(session, package_id) is None:
                        raise RecordNotFound(
                            "Package does not exist", package_id=package_id, version=version)
                    BuildResult.upsert(session, package_id, version, build_status,
                                       test_status, error_log)
            except IntegrityError as e:
                # The package was deleted under us.
                raise RecordNotFound("Package does not exist",
                                     package_id=package_id, version=version, cause=e)
            except SQLAlchemyError as e:
                log.error("Database error storing %s build of package %r with Zig %s: %s" % (
                    build_status, package_id, version, e))
                raise PersistenceFailure("Failed to store build result",
                                         package_id=package_id, version=version, cause=e)

    def persist_result(self, package_id, version, build_status, test_status, error_summary):
        """ Stores the outcome of a build, replacing any previous one. """
        self._write(package_id, version, build_status, test_status, error_summary or "")
        log.info("Updated build result for package %r with Zig %s: %s (test: %s)" % (
            package_id, version, build_status, test_status))
        if build_status == "failed":
            log.debug("Build error for package %r: %s" % (package_id, error_summary))

    def mark_pending(self, package_id, version):
        """ Records that a build of the package with `version` is scheduled. """
        log.debug("Marking build as pending for package %r with Zig %s" % (package_id, version))
        try:
            self._write(package_id, version, "pending", None, "")
        except RecordNotFound:
            log.error("Package %r does not exist, cannot mark build as pending" % package_id)
            raise
        log.info("Marked build as pending for package %r with Zig %s" % (package_id, version))

    def get_build_results(self, package_id):
        """ Returns the build results of a package, most recent first. """
        with self.db_lock:
            with self.db.session_scope() as session:
                results = BuildResult.for_package(session, package_id)
        log.debug("Retrieved %d build results for package %r" % (len(results), package_id))
        return results

    def get_package(self, package_id):
        with self.db_lock:
            with self.db.session_scope() as session:
                return Package.get_by_id(session, package_id)

    def get_packages(self):
        with self.db_lock:
            with self.db.session_scope() as session:
                return session.query(Package).order_by(Package.id).all()

    def get_missing_builds_for_package(self, package_id):
        """ Returns the Zig versions the package has no build result for. """
        with self.db_lock:
            with self.db.session_scope() as session:
                recorded = BuildResult.recorded_versions(session, package_id)
        return [version for version in self.versions if version not in recorded]

    def get_stalled_builds(self, threshold=None, now=None):
        """ Returns the pending builds not touched for `threshold` seconds. """
        if threshold is None:
            threshold = self.config.stalled_build_threshold
        if now is None:
            now = utcnow()
        older_than = now - timedelta(seconds=threshold)
        with self.db_lock:
            with self.db.session_scope() as session:
                return BuildResult.stalled(session, older_than)

    # Housekeeping

    def cleanup(self):
        """ Removes stopped build containers and left over result files.

        Only result files older than this orchestrator are removed; newer
        ones may belong to builds in flight.

        :return: number of result files removed
        """
        log.info("Starting cleanup of old build containers and files")
        try:
            result = self.runner.prune_containers(self.config.container_label)
        except BuildSystemError as e:
            log.warning("Failed to cleanup Docker containers: %s" % e)
        else:
            if result.returncode != 0:
                log.warning("Docker container prune completed with warnings - exit code: %r, "
                            "stderr: %s" % (result.returncode, result.stderr))
            else:
                log.info("Docker container cleanup completed successfully")

        pattern = os.path.join(self.config.results_dir,
                               "%s*%s" % (RESULT_FILE_PREFIX, RESULT_FILE_SUFFIX))
        deleted = 0
        for path in glob.glob(pattern):
            try:
                if os.path.getmtime(path) >= self.started_at:
                    continue
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                log.warning("Failed to delete result file %s: %s" % (path, e))
                continue
            deleted += 1
            log.debug("Deleted old result file: %s" % path)

        log.info("Cleanup completed: deleted %d old result files" % deleted)
        return deleted
