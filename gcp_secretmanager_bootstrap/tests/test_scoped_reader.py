# -*- coding: utf-8 -*-
"""
Tests for request time reads through an access token, rendering and decorators.

"""

import logging
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from gcp_secretmanager_bootstrap import *


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class TestScopedSecretReader(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.engine = InMemorySecretEngine(clock=self.clock)
        self.engine.put("secret/app/db", {"db-user": "app", "db.password": "pw1"})
        self.engine.put("secret/ops/ci", {"TOKEN": "ci"})
        self.policies = InMemoryPolicyStore()
        self.policies.put_policy(Policy("app-read",
                                        (PolicyRule("secret/app/*", frozenset(["read"])),)))
        self.token = AccessToken(token="t", role_name="app", policies=frozenset(["app-read"]),
                                 issued_at=self.clock.now,
                                 expires_at=self.clock.now + timedelta(minutes=15))
        self.reader = ScopedSecretReader(self.engine, self.policies, self.token, ttl=60.0,
                                         clock=self.clock)

    def test_reads_permitted_path(self):
        self.assertEqual(self.reader.get_fields("secret/app/db"),
                         {"db-user": "app", "db.password": "pw1"})

    def test_denies_other_paths(self):
        with self.assertRaises(CapabilityDenied):
            self.reader.get_secret("secret/ops/ci")

    def test_cache_ttl(self):
        self.reader.get_secret("secret/app/db")
        self.engine.put("secret/app/db", {"db-user": "app", "db.password": "pw2"})
        self.assertEqual(self.reader.get_secret("secret/app/db").version, 1)

        self.clock.advance(seconds=61)
        self.assertEqual(self.reader.get_secret("secret/app/db").version, 2)

    def test_invalidate(self):
        self.reader.get_secret("secret/app/db")
        self.engine.put("secret/app/db", {"db-user": "app", "db.password": "pw2"})
        self.reader.invalidate_secret("secret/app/db")
        self.assertEqual(self.reader.get_secret("secret/app/db").version, 2)

    def test_cached_entries_still_authorised(self):
        self.reader.get_secret("secret/app/db")
        self.policies.put_policy(Policy("app-read",
                                        (PolicyRule("secret/app/cache", frozenset(["read"])),)))
        with self.assertRaises(CapabilityDenied):
            self.reader.get_secret("secret/app/db")

    def test_environment(self):
        self.assertEqual(self.reader.environment(["secret/app/db"], prefix="app_"),
                         {"APP_DB_USER": "app", "APP_DB_PASSWORD": "pw1"})


class TestRenderEnvironment(unittest.TestCase):

    def test_names(self):
        self.assertEqual(render_environment({"db-host": "h", "1st": "x"}),
                         {"DB_HOST": "h", "_1ST": "x"})

    def test_collisions(self):
        with self.assertRaises(InvalidConfiguration):
            render_environment({"db-host": "a", "db_host": "b"})


class TestDecorators(unittest.TestCase):

    def setUp(self):
        self.reader = mock.Mock()
        self.reader.get_fields.return_value = {"DB_USER": "app", "DB_PASSWORD": "pw"}

    def test_inject_fields(self):
        @InjectSecretFields(self.reader, "secret/app/db")
        def connect(fields, host):
            return fields["DB_USER"], host

        self.assertEqual(connect("db"), ("app", "db"))
        self.reader.get_fields.assert_called_once_with("secret/app/db", None)

    def test_inject_keyworded(self):
        @InjectKeywordedSecretFields(self.reader, "secret/app/db", user="DB_USER",
                                     password="DB_PASSWORD")
        def connect(host, user=None, password=None):
            return host, user, password

        self.assertEqual(connect("db"), ("db", "app", "pw"))

    def test_inject_keyworded_missing_field(self):
        @InjectKeywordedSecretFields(self.reader, "secret/app/db", port="DB_PORT")
        def connect(port=None):
            return port

        with self.assertRaises(KeyError):
            connect()


class TestAuditLog(unittest.TestCase):

    def test_logs_json_and_survives_broken_sink(self):
        sink = RecordingSink()

        def broken(event):
            raise RuntimeError("collector down")

        audit = AuditLog(sinks=[broken, sink])
        with self.assertLogs("gcp_secretmanager_bootstrap.audit", level=logging.INFO) as logs:
            event = audit.emit("redeem_credential", "role-id", "success", attempt=1)
        self.assertEqual(sink.events, [event])
        self.assertIn('"operation": "redeem_credential"', logs.output[0])
