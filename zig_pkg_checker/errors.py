# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Defines custom exceptions and error handling functions """

from flask import jsonify


class NotFound(ValueError):
    pass


class BuildSystemError(Exception):
    """ Base class for failures of the build orchestrator.

    Carries the package and Zig version the failure belongs to (when known)
    and the underlying exception, so callers can log or record it without
    parsing the message.
    """

    def __init__(self, message, package_id=None, version=None, cause=None):
        super(BuildSystemError, self).__init__(message)
        self.message = message
        self.package_id = package_id
        self.version = version
        self.cause = cause

    def __str__(self):
        context = []
        if self.package_id is not None:
            context.append("package=%s" % self.package_id)
        if self.version is not None:
            context.append("zig=%s" % self.version)
        if self.cause is not None:
            context.append("cause=%r" % self.cause)
        if not context:
            return self.message
        return "%s (%s)" % (self.message, ", ".join(context))


class RuntimeUnavailable(BuildSystemError):
    """ The container engine can't be reached, nothing can be scheduled. """


class ImageBuildFailed(BuildSystemError):
    pass


class ProcessLaunchFailed(BuildSystemError):
    pass


class ContainerExecutionFailed(BuildSystemError):
    pass


class ResultFileUnreadable(BuildSystemError):
    pass


class RecordNotFound(BuildSystemError):
    """ The package vanished between scheduling and persistence. """


class PersistenceFailure(BuildSystemError):
    pass


def json_error(status, error, message):
    response = jsonify({"status": status, "error": error, "message": message})
    response.status_code = status
    return response
