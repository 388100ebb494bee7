# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Thin wrappers around the container runtime command line.

Nothing here retries or interprets results, callers decide what a non-zero
exit code means.
"""

import collections
import logging
import subprocess as sp

from zig_pkg_checker.errors import ContainerExecutionFailed, ProcessLaunchFailed

log = logging.getLogger(__name__)


ProcessResult = collections.namedtuple("ProcessResult", ["returncode", "stdout", "stderr"])


def _decode(data, max_bytes):
    if not data:
        return ""
    if max_bytes and len(data) > max_bytes:
        # The end of a build log is where the failure is.
        data = data[-max_bytes:]
    return data.decode("utf-8", errors="replace")


class ProcessRunner(object):
    """Runs docker commands and captures their output."""

    def __init__(self, config):
        self.config = config
        self.docker = config.docker_binary

    def run(self, cmd, max_output_bytes=None, timeout=None):
        """ Runs `cmd` and returns a ProcessResult.

        :param list cmd: the command and its arguments
        :param int max_output_bytes: keep at most this many bytes of stdout
            and of stderr
        :param int timeout: seconds to wait for the command, None to wait forever
        :raises ProcessLaunchFailed: the command could not be started
        :raises ContainerExecutionFailed: the command ran past the timeout
        """
        if max_output_bytes is None:
            max_output_bytes = self.config.max_output_bytes
        log.debug("Running %r" % cmd)
        try:
            proc = sp.Popen(cmd, stdout=sp.PIPE, stderr=sp.PIPE)
        except OSError as e:
            raise ProcessLaunchFailed("Failed to execute %r" % cmd[:3], cause=e)

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except sp.TimeoutExpired as e:
            proc.kill()
            stdout, stderr = proc.communicate()
            raise ContainerExecutionFailed(
                "%r timed out after %ss" % (cmd[:3], timeout), cause=e)

        return ProcessResult(
            proc.returncode,
            _decode(stdout, max_output_bytes),
            _decode(stderr, max_output_bytes))

    def version(self):
        return self.run([self.docker, "--version"], max_output_bytes=1024)

    def image_exists(self, image):
        result = self.run([self.docker, "image", "inspect", image],
                          max_output_bytes=1024 * 1024)
        return result.returncode == 0

    def build_image(self, image, context_dir):
        return self.run([self.docker, "build", "-t", image, context_dir])

    def run_container(self, image, name, env, volumes, memory, cpus,
                      label=None, timeout=None):
        """ Runs `image` in a throwaway container and waits for it to exit.

        :param dict env: environment variables passed with -e
        :param dict volumes: host path -> container path, mounted read/write
        """
        cmd = [self.docker, "run", "--rm", "--name", name]
        if label:
            cmd.extend(["--label", label])
        for key in sorted(env):
            cmd.extend(["-e", "%s=%s" % (key, env[key])])
        for host_path in sorted(volumes):
            cmd.extend(["-v", "%s:%s" % (host_path, volumes[host_path])])
        cmd.extend(["--memory=%s" % memory, "--cpus=%s" % cpus, image])
        try:
            return self.run(cmd, timeout=timeout)
        except ContainerExecutionFailed:
            # The docker client is gone, the container might not be.
            self.remove_container(name)
            raise

    def remove_container(self, name):
        try:
            result = self.run([self.docker, "rm", "-f", name], max_output_bytes=1024)
        except ProcessLaunchFailed as e:
            log.warning("Failed to remove container %s: %s" % (name, e))
            return False
        return result.returncode == 0

    def prune_containers(self, label):
        return self.run([self.docker, "container", "prune", "-f",
                         "--filter", "label=%s" % label],
                        max_output_bytes=10 * 1024 * 1024)
