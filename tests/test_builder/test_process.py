# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import subprocess as sp

from mock import MagicMock, patch
import pytest

from zig_pkg_checker.errors import ContainerExecutionFailed, ProcessLaunchFailed
from zig_pkg_checker.process import ProcessRunner
from tests import make_conf


@patch("zig_pkg_checker.process.sp.Popen")
class TestProcessRunner:

    def setup_method(self, test_method):
        self.runner = ProcessRunner(make_conf())

    def _proc(self, popen, returncode=0, stdout=b"", stderr=b""):
        proc = MagicMock()
        proc.returncode = returncode
        proc.communicate.return_value = (stdout, stderr)
        popen.return_value = proc
        return proc

    def test_run_captures_output(self, popen):
        self._proc(popen, 3, b"out\n", b"err\n")
        result = self.runner.run(["docker", "info"])
        assert result == (3, "out\n", "err\n")
        popen.assert_called_once_with(["docker", "info"], stdout=sp.PIPE, stderr=sp.PIPE)

    def test_output_keeps_the_tail(self, popen):
        self._proc(popen, 0, b"abcdefgh", b"\xff\xfeok")
        result = self.runner.run(["docker", "logs"], max_output_bytes=4)
        assert result.stdout == "efgh"
        assert result.stderr == "\ufffd\ufffdok"

    def test_launch_failure(self, popen):
        popen.side_effect = FileNotFoundError("docker")
        with pytest.raises(ProcessLaunchFailed):
            self.runner.version()

    def test_image_exists(self, popen):
        self._proc(popen, 1)
        assert not self.runner.image_exists("zig-checker:0.14.0")
        popen.assert_called_once_with(
            ["docker", "image", "inspect", "zig-checker:0.14.0"],
            stdout=sp.PIPE, stderr=sp.PIPE)

    def test_build_image(self, popen):
        self._proc(popen)
        self.runner.build_image("zig-checker:master", "docker/zig-master")
        assert popen.call_args[0][0] == [
            "docker", "build", "-t", "zig-checker:master", "docker/zig-master"]

    def test_run_container_command(self, popen):
        proc = self._proc(popen, 0, b"done")
        env = {"REPO_URL": "https://github.com/zigzap/zap", "BUILD_ID": "42-0.14.0-1"}
        result = self.runner.run_container(
            "zig-checker:0.14.0", "zig-pkg-checker-42-0.14.0-1", env,
            {"/tmp/results": "/results"}, "2g", "2",
            label="zig-pkg-checker", timeout=60)

        assert result.stdout == "done"
        assert popen.call_args[0][0] == [
            "docker", "run", "--rm", "--name", "zig-pkg-checker-42-0.14.0-1",
            "--label", "zig-pkg-checker",
            "-e", "BUILD_ID=42-0.14.0-1",
            "-e", "REPO_URL=https://github.com/zigzap/zap",
            "-v", "/tmp/results:/results",
            "--memory=2g", "--cpus=2",
            "zig-checker:0.14.0",
        ]
        proc.communicate.assert_called_once_with(timeout=60)

    def test_run_container_timeout(self, popen):
        proc = self._proc(popen)
        proc.communicate.side_effect = [
            sp.TimeoutExpired(["docker", "run"], 60), (b"", b""), (b"", b"")]

        with pytest.raises(ContainerExecutionFailed):
            self.runner.run_container(
                "zig-checker:master", "zig-pkg-checker-1-master-1", {}, {}, "2g", "2",
                timeout=60)

        proc.kill.assert_called_once_with()
        assert popen.call_args[0][0] == ["docker", "rm", "-f", "zig-pkg-checker-1-master-1"]

    def test_prune_containers(self, popen):
        self._proc(popen)
        self.runner.prune_containers("zig-pkg-checker")
        assert popen.call_args[0][0] == [
            "docker", "container", "prune", "-f", "--filter", "label=zig-pkg-checker"]
