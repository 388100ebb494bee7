# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Command line management of the package build checker. """

import json

import click
from flask import current_app
from flask.cli import FlaskGroup

from zig_pkg_checker import create_app
from zig_pkg_checker.errors import BuildSystemError
from zig_pkg_checker.scheduler.main import run as run_scheduler


def _context():
    return current_app.extensions["zig_pkg_checker"]


@click.group(cls=FlaskGroup, create_app=create_app)
def manager():
    """ Manages the package build checker. """


@manager.command()
def createdb():
    """ Creates the database tables. """
    _context().db.create_tables()
    click.echo("Database tables created")


@manager.command()
def cleanup():
    """ Removes stopped build containers and old result files. """
    deleted = _context().orchestrator.cleanup()
    click.echo("Deleted %d old result files" % deleted)


@manager.command()
@click.argument("package_id", type=int)
def builds(package_id):
    """ Shows the build results of a package. """
    orchestrator = _context().orchestrator
    results = [build.json() for build in orchestrator.get_build_results(package_id)]
    click.echo(json.dumps({
        "items": results,
        "missing": orchestrator.get_missing_builds_for_package(package_id),
    }, indent=2))


@manager.command()
@click.argument("package_id", type=int)
def rebuild(package_id):
    """ Builds a package with every supported Zig version and waits for it. """
    orchestrator = _context().orchestrator
    package = orchestrator.get_package(package_id)
    if package is None:
        raise click.ClickException("No package with id %r" % package_id)
    try:
        worker = orchestrator.start_package_builds(package.id, package.name, package.url)
    except BuildSystemError as e:
        raise click.ClickException(str(e))
    worker.join()
    for build in orchestrator.get_build_results(package.id):
        click.echo("%s: %s (tests: %s)" % (
            build.zig_version, build.build_status, build.test_status))


@manager.command()
def scheduler():
    """ Runs the recovery sweeps until interrupted. """
    run_scheduler(_context())


def main():
    manager()


if __name__ == "__main__":
    main()
