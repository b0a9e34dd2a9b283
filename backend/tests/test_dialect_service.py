import os
import unittest

from inventory_analytics import create_app
from inventory_analytics.config import Config
from inventory_analytics.services.analytics_sql import (
    OracleAnalyticsQueries,
    SqliteAnalyticsQueries,
    queries_for,
)
from inventory_analytics.services.dialect_service import (
    DEFAULT_DIALECT,
    DialectDetector,
    SqlDialect,
    UnknownDialectError,
    check_database_backend,
    resolve_dialect,
)


class ResolveDialectTests(unittest.TestCase):
    def test_unset_defaults_to_production(self):
        self.assertIs(resolve_dialect(None), SqlDialect.ORACLE)
        self.assertIs(resolve_dialect("   "), SqlDialect.ORACLE)
        self.assertIs(DEFAULT_DIALECT, SqlDialect.ORACLE)

    def test_values_are_trimmed_and_case_insensitive(self):
        self.assertIs(resolve_dialect(" SQLite "), SqlDialect.SQLITE)
        self.assertIs(resolve_dialect("ORACLE"), SqlDialect.ORACLE)
        self.assertIs(resolve_dialect(SqlDialect.SQLITE), SqlDialect.SQLITE)

    def test_unknown_value_raises(self):
        with self.assertRaises(UnknownDialectError):
            resolve_dialect("h2")


class DialectDetectorTests(unittest.TestCase):
    def test_alternate_dialect_is_the_test_dialect(self):
        self.assertTrue(DialectDetector(SqlDialect.SQLITE).is_alternate_dialect())
        self.assertFalse(DialectDetector(SqlDialect.ORACLE).is_alternate_dialect())
        self.assertFalse(DialectDetector().is_alternate_dialect())

    def test_queries_follow_the_detector(self):
        self.assertIsInstance(queries_for(DialectDetector(SqlDialect.SQLITE)), SqliteAnalyticsQueries)
        self.assertIsInstance(queries_for(DialectDetector(SqlDialect.ORACLE)), OracleAnalyticsQueries)


class CreateAppDialectTests(unittest.TestCase):
    def test_unknown_dialect_fails_at_startup(self):
        with self.assertRaises(UnknownDialectError):
            create_app({"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "ANALYTICS_SQL_DIALECT": "postgres"})

    def test_dialect_is_resolved_once_into_extensions(self):
        app = create_app({"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "ANALYTICS_SQL_DIALECT": "sqlite"})
        self.assertEqual(app.extensions["analytics_dialect"], DialectDetector(SqlDialect.SQLITE))
        self.assertIsInstance(app.extensions["analytics_queries"], SqliteAnalyticsQueries)

    def test_dialect_that_does_not_match_the_database_fails_at_startup(self):
        with self.assertRaisesRegex(UnknownDialectError, "does not match"):
            create_app({"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "ANALYTICS_SQL_DIALECT": "oracle"})
        with self.assertRaisesRegex(UnknownDialectError, "does not match"):
            create_app({"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "ANALYTICS_SQL_DIALECT": None})


class DatabaseBackendCheckTests(unittest.TestCase):
    def test_matching_backends_pass(self):
        check_database_backend(DialectDetector(SqlDialect.SQLITE), "sqlite:///:memory:")
        check_database_backend(
            DialectDetector(SqlDialect.ORACLE),
            "oracle+oracledb://scott:tiger@db:1521/?service_name=XEPDB1",
        )

    def test_mismatch_raises(self):
        with self.assertRaises(UnknownDialectError):
            check_database_backend(
                DialectDetector(SqlDialect.SQLITE),
                "oracle+oracledb://scott:tiger@db:1521/?service_name=XEPDB1",
            )

    @unittest.skipIf(
        "DATABASE_URL" in os.environ or "ANALYTICS_SQL_DIALECT" in os.environ,
        "environment overrides the shipped defaults",
    )
    def test_shipped_defaults_agree(self):
        detector = DialectDetector(resolve_dialect(Config.ANALYTICS_SQL_DIALECT))
        self.assertIs(detector.dialect, SqlDialect.SQLITE)
        check_database_backend(detector, Config.SQLALCHEMY_DATABASE_URI)
