# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from zig_pkg_checker.models import BuildResult, Database, Package
from zig_pkg_checker.utils import utcnow
from tests import init_data, make_conf


class TestModels:

    def setup_method(self, test_method):
        self.db = Database(make_conf())
        self.db.create_tables()
        init_data(self.db)

    def teardown_method(self, test_method):
        self.db.drop_tables()

    def test_upsert_is_idempotent(self):
        for _ in range(3):
            with self.db.session_scope() as session:
                BuildResult.upsert(session, 42, "0.14.0", "success", "no_tests")

        with self.db.session_scope() as session:
            builds = BuildResult.for_package(session, 42)
        assert len(builds) == 1
        assert builds[0].build_status == "success"
        assert builds[0].test_status == "no_tests"
        assert builds[0].error_log == ""

    def test_upsert_overwrites(self):
        with self.db.session_scope() as session:
            first = BuildResult.upsert(session, 42, "master", "pending")
            first_checked = first.last_checked
        with self.db.session_scope() as session:
            BuildResult.upsert(session, 42, "master", "failed", None, "error: boom")

        with self.db.session_scope() as session:
            build = session.query(BuildResult).one()
        assert build.build_status == "failed"
        assert build.error_log == "error: boom"
        assert build.last_checked >= first_checked

    def test_one_row_per_version(self):
        with pytest.raises(IntegrityError):
            with self.db.session_scope() as session:
                session.add(BuildResult(package_id=42, zig_version="0.13.0"))
                session.add(BuildResult(package_id=42, zig_version="0.13.0"))

    def test_foreign_key(self):
        with pytest.raises(IntegrityError):
            with self.db.session_scope() as session:
                BuildResult.upsert(session, 1234, "0.13.0", "pending")

    @pytest.mark.parametrize("field, value", [
        ("build_status", "building"),
        ("test_status", "skipped"),
        ("zig_version", "0.11.0"),
    ])
    def test_validation(self, field, value):
        with pytest.raises(ValueError):
            BuildResult(**{field: value})

    def test_for_package_most_recent_first(self):
        with self.db.session_scope() as session:
            old = BuildResult.upsert(session, 42, "0.12.0", "success", "success")
            old.last_checked = utcnow() - timedelta(days=1)
            BuildResult.upsert(session, 42, "0.14.0", "failed")
            BuildResult.upsert(session, 7, "0.14.0", "failed")

        with self.db.session_scope() as session:
            versions = [b.zig_version for b in BuildResult.for_package(session, 42)]
            recorded = BuildResult.recorded_versions(session, 42)
        assert versions == ["0.14.0", "0.12.0"]
        assert recorded == {"0.14.0", "0.12.0"}

    def test_stalled(self):
        with self.db.session_scope() as session:
            stuck = BuildResult.upsert(session, 42, "master", "pending")
            stuck.last_checked = utcnow() - timedelta(hours=3)
            BuildResult.upsert(session, 42, "0.14.0", "pending")
            done = BuildResult.upsert(session, 7, "master", "success")
            done.last_checked = utcnow() - timedelta(hours=3)

        with self.db.session_scope() as session:
            stalled = BuildResult.stalled(session, utcnow() - timedelta(hours=2))
        assert [(b.package_id, b.zig_version) for b in stalled] == [(42, "master")]

    def test_json(self):
        with self.db.session_scope() as session:
            build = BuildResult.upsert(session, 42, "0.14.0", "success", "no_tests")
            package = Package.get_by_id(session, 42)
            package_json = package.json()
        data = build.json()
        assert data["package_id"] == 42
        assert data["zig_version"] == "0.14.0"
        assert data["build_status"] == "success"
        assert data["test_status"] == "no_tests"
        assert data["last_checked"] == build.last_checked.isoformat()
        assert package_json["name"] == "zap"
        assert package_json["source_type"] == "github"
