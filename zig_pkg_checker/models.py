# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""Database handler functions."""

from contextlib import contextmanager
import logging

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import declarative_base, sessionmaker, validates
from sqlalchemy.pool import StaticPool

from zig_pkg_checker import catalog
from zig_pkg_checker.utils import utcnow

log = logging.getLogger(__name__)


BUILD_STATES = (
    # Scheduled, no attempt recorded yet.
    "pending",
    "success",
    "failed",
)

TEST_STATES = (
    "success",
    "failed",
    "no_tests",
)


Base = declarative_base()


class Database(object):
    """Class for handling database connections.

    Sessions are short lived: every `session_scope()` opens one, commits on
    success and rolls back on error.
    """

    def __init__(self, config, debug=False):
        """Initialize the database object."""
        options = {"echo": debug}
        if config.db.startswith("sqlite") and config.db.rstrip("/").endswith(
                (":memory:", "sqlite:")):
            # In-memory SQLite is only used by the tests, share the one
            # connection between the worker threads.
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        self.engine = create_engine(config.db, **options)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def session_scope(self):
        """Database session object, committed when the block exits cleanly."""
        session = self._Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self):
        """ Creates our tables in the database. """
        Base.metadata.create_all(self.engine)

    def drop_tables(self):
        Base.metadata.drop_all(self.engine)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Package(Base):
    __tablename__ = "packages"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    url = Column(String, nullable=False)
    description = Column(Text)
    author = Column(String)
    license = Column(String)
    source_type = Column(String, nullable=False, default="github")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_updated = Column(DateTime, nullable=False, default=utcnow)
    popularity_score = Column(Integer, default=0)

    @classmethod
    def get_by_id(cls, session, package_id):
        return session.query(cls).filter(cls.id == package_id).first()

    def json(self):
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "description": self.description,
            "author": self.author,
            "license": self.license,
            "source_type": self.source_type,
        }

    def __repr__(self):
        return "<Package %s, id %r>" % (self.name, self.id)


class BuildResult(Base):
    __tablename__ = "build_results"
    __table_args__ = (
        UniqueConstraint("package_id", "zig_version", name="uq_build_results_package_version"),
    )
    id = Column(Integer, primary_key=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=False, index=True)
    zig_version = Column(String, nullable=False)
    build_status = Column(String, nullable=False, default="pending")
    # None until a build with tests finished
    test_status = Column(String)
    error_log = Column(Text)
    last_checked = Column(DateTime, nullable=False, default=utcnow)

    @validates("build_status")
    def validate_build_status(self, key, field):
        if field in BUILD_STATES:
            return field
        raise ValueError("%s: %s, not in %r" % (key, field, BUILD_STATES))

    @validates("test_status")
    def validate_test_status(self, key, field):
        if field is None or field in TEST_STATES:
            return field
        raise ValueError("%s: %s, not in %r" % (key, field, TEST_STATES))

    @validates("zig_version")
    def validate_zig_version(self, key, field):
        if catalog.is_known(field):
            return field
        raise ValueError("%s: %s, not in %r" % (key, field, catalog.ZIG_VERSIONS))

    @classmethod
    def upsert(cls, session, package_id, zig_version, build_status,
               test_status=None, error_log=""):
        """ Insert or overwrite the one row for (package_id, zig_version). """
        build = session.query(cls).filter_by(
            package_id=package_id, zig_version=zig_version).first()
        if build is None:
            build = cls(package_id=package_id, zig_version=zig_version)
            session.add(build)
        build.build_status = build_status
        build.test_status = test_status
        build.error_log = error_log
        build.last_checked = utcnow()
        session.flush()
        return build

    @classmethod
    def for_package(cls, session, package_id):
        return session.query(cls)\
            .filter(cls.package_id == package_id)\
            .order_by(cls.last_checked.desc(), cls.id.desc())\
            .all()

    @classmethod
    def recorded_versions(cls, session, package_id):
        rows = session.query(cls.zig_version)\
            .filter(cls.package_id == package_id)\
            .all()
        return set(row[0] for row in rows)

    @classmethod
    def stalled(cls, session, older_than):
        """ Pending builds which have not been touched since `older_than`. """
        return session.query(cls)\
            .filter(cls.build_status == "pending")\
            .filter(cls.last_checked < older_than)\
            .order_by(cls.package_id, cls.id)\
            .all()

    def json(self):
        return {
            "id": self.id,
            "package_id": self.package_id,
            "zig_version": self.zig_version,
            "build_status": self.build_status,
            "test_status": self.test_status,
            "error_log": self.error_log or "",
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
        }

    def __repr__(self):
        return "<BuildResult package %r, zig %s, status %r, tests %r>" % (
            self.package_id, self.zig_version, self.build_status, self.test_status)
