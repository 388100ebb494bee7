# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Turns what a build container left behind into a definitive outcome.

The build script inside the container reports its own build_status, but a
`zig build` can print errors and still exit 0, so the reported status is only
a starting point. Everything here works on plain text and has no side
effects.
"""

import collections
import json
import re

BuildOutcome = collections.namedtuple(
    "BuildOutcome", ["build_status", "test_status", "error_summary"])

MAX_SUMMARY_CHARS = 4000
LINES_BEFORE = 2
LINES_AFTER = 3

NO_DETAILS = "Build failed but no error details available"
UNKNOWN_CONTAINER_ERROR = "Docker build failed with unknown error"

# Any of these in a build log means the build failed, whatever was reported.
FAILURE_SIGNATURES = (
    ("build command failed",
     re.compile(r"error: the following build command failed with exit code")),
    ("command terminated unexpectedly",
     re.compile(r"error: the following command terminated unexpectedly")),
    ("command failed",
     re.compile(r"error: the following command failed with")),
    ("compilation terminated", re.compile(r"compilation terminated")),
    ("linker error", re.compile(r"error: ld\.lld:")),
    ("build.zig.zon syntax error", re.compile(r"build\.zig\.zon:[^\n]*error:")),
    ("fatal error", re.compile(r"fatal:")),
)

ERROR_MARKERS = (
    "error:",
    "Build failed",
    "unsupported zig version:",
    "compilation terminated",
    "build.zig:",
    "fatal:",
)

BUILD_SUMMARY_RE = re.compile(
    r"Build Summary:\s*(?P<succeeded>\d+)/(?P<total>\d+) steps succeeded(?P<rest>[^\n]*)")
FAILED_STEPS_RE = re.compile(r"(?P<failed>\d+) failed")
GENERIC_ERROR_RE = re.compile(r"\berror\b|\bfailed\b", re.IGNORECASE)


def _string_field(text, name):
    match = re.search(r'"%s"\s*:\s*"((?:[^"\\]|\\.)*)"' % name, text, re.DOTALL)
    if not match:
        return None
    raw = match.group(1)
    try:
        return json.loads('"%s"' % raw)
    except ValueError:
        return raw


def _text(value):
    return value if isinstance(value, str) else None


def parse_result_payload(text):
    """ Reads the result file written by the build container.

    Falls back to looking for the individual fields when the JSON is broken,
    for example when the build script died halfway through writing it.
    Fields of the wrong type count as missing.

    :return: dict with build_status, test_status, error_log and build_log
    """
    text = text or ""
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        return {
            "build_status": _text(payload.get("build_status")),
            "test_status": _text(payload.get("test_status")),
            "error_log": _text(payload.get("error_log")) or "",
            "build_log": _text(payload.get("build_log")) or "",
        }

    return {
        "build_status": _string_field(text, "build_status"),
        "test_status": _string_field(text, "test_status"),
        "error_log": _string_field(text, "error_log") or "",
        "build_log": _string_field(text, "build_log") or "",
    }


def _failing_build_summary(text):
    """ Returns the first Build Summary line reporting failed steps, or
    no step succeeding at all.
    """
    for match in BUILD_SUMMARY_RE.finditer(text):
        failed = FAILED_STEPS_RE.search(match.group("rest"))
        if failed and int(failed.group("failed")) > 0:
            return match.group(0).strip()
        if int(match.group("succeeded")) == 0:
            return match.group(0).strip()
    return None


def find_failure_signature(build_log):
    """ Returns a short name of the first definitive failure found in
    `build_log`, None if the log looks clean.
    """
    if not build_log:
        return None
    for name, pattern in FAILURE_SIGNATURES:
        if pattern.search(build_log):
            return name
    if _failing_build_summary(build_log):
        return "failed build summary"
    if build_log.count("error:") >= 2:
        return "multiple errors"
    return None


def _cap(text, limit=MAX_SUMMARY_CHARS):
    if len(text) <= limit:
        return text
    return text[:limit - 3].rstrip() + "..."


def _window(lines, index):
    start = max(0, index - LINES_BEFORE)
    return "\n".join(lines[start:index + LINES_AFTER + 1]).strip()


def extract_error_snippet(text):
    """ Cuts the part of a build log explaining why the build failed.

    Always returns a non-empty string.
    """
    text = (text or "").strip()
    if not text:
        return NO_DETAILS

    lines = text.splitlines()
    summary = _failing_build_summary(text)

    for index, line in enumerate(lines):
        if any(marker in line for marker in ERROR_MARKERS):
            snippet = _window(lines, index)
            if summary and summary not in snippet:
                # The summary line survives the cap, the window gets cut.
                tail = "\n...\n%s" % summary
                limit = MAX_SUMMARY_CHARS - len(tail)
                if limit > 3:
                    return _cap(snippet, limit) + tail
                return _cap(summary)
            return _cap(snippet)

    if summary:
        return _cap(summary)

    for index, line in enumerate(lines):
        if GENERIC_ERROR_RE.search(line):
            return _cap(_window(lines, index))

    return NO_DETAILS


def extract_container_error(stdout, stderr):
    """ Explains a container which exited with a non-zero code. """
    stdout = (stdout or "").strip()
    stderr = (stderr or "").strip()
    if stdout and any(marker in stdout for marker in ERROR_MARKERS):
        return extract_error_snippet(stdout)
    if stderr:
        return _cap(stderr)
    return UNKNOWN_CONTAINER_ERROR


def interpret_result(payload_text, stdout="", stderr=""):
    """ Decides the final outcome of one build.

    :param str payload_text: content of the container's result file
    :param str stdout: what the container printed, used when the result file
        doesn't explain a failure
    :param str stderr: same, for stderr
    :return: BuildOutcome
    """
    report = parse_result_payload(payload_text)

    build_status = report["build_status"]
    if build_status not in ("success", "failed"):
        build_status = "failed"
    test_status = report["test_status"]
    if test_status not in ("success", "failed", "no_tests"):
        test_status = None
    error_summary = (report["error_log"] or "").strip()
    build_log = (report["build_log"] or "").strip()

    if find_failure_signature(build_log):
        build_status = "failed"
        # Tests of a broken build didn't really run.
        if test_status is not None:
            test_status = "failed"
        error_summary = extract_error_snippet(build_log)

    if build_status == "failed" and not error_summary:
        source = build_log or (stdout or "").strip() or (stderr or "").strip()
        error_summary = extract_error_snippet(source)

    return BuildOutcome(build_status, test_status, _cap(error_summary))
