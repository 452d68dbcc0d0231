# -*- coding: utf-8 -*-
"""
Tests for the policy data model and capability evaluation.

"""

import json
import unittest
from datetime import datetime, timedelta, timezone

from gcp_secretmanager_bootstrap import *
from gcp_secretmanager_bootstrap.models import DELETE, LIST, READ, WRITE


NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_token(policies, expires_in=timedelta(minutes=15)):
    return AccessToken(token="t",
                       role_name="app",
                       policies=frozenset(policies),
                       issued_at=NOW,
                       expires_at=NOW + expires_in,
                       max_expires_at=NOW + expires_in)


class TestParseTTL(unittest.TestCase):

    def test_duration_strings(self):
        self.assertEqual(parse_ttl("30m"), timedelta(minutes=30))
        self.assertEqual(parse_ttl("2h30m"), timedelta(hours=2, minutes=30))
        self.assertEqual(parse_ttl("1d"), timedelta(days=1))
        self.assertEqual(parse_ttl("45"), timedelta(seconds=45))

    def test_numbers_and_timedeltas(self):
        self.assertEqual(parse_ttl(90), timedelta(seconds=90))
        self.assertEqual(parse_ttl(timedelta(hours=1)), timedelta(hours=1))

    def test_rejects_garbage(self):
        for value in ["", "ten minutes", "5x", "m5", None, True, -1]:
            with self.assertRaises(InvalidConfiguration):
                parse_ttl(value)

    def test_rejects_non_finite_and_oversized(self):
        for value in [float("nan"), float("inf"), float("-inf"), 10 ** 20, "99999999999d"]:
            with self.assertRaises(InvalidConfiguration, msg=repr(value)):
                parse_ttl(value)

    def test_role_ttl_from_json_nan(self):
        data = json.loads('{"name": "app", "policies": ["p"], "token_ttl": NaN}')
        with self.assertRaises(InvalidConfiguration):
            Role.from_dict(data)


class TestParseFlag(unittest.TestCase):

    def test_bools_and_strings(self):
        self.assertTrue(parse_flag(True, "single_use"))
        self.assertFalse(parse_flag(False, "single_use"))
        self.assertTrue(parse_flag("true", "single_use"))
        self.assertFalse(parse_flag(" False ", "single_use"))

    def test_rejects_other_values(self):
        for value in ["yes", "0", "", 0, 1, None]:
            with self.assertRaises(InvalidConfiguration, msg=repr(value)):
                parse_flag(value, "single_use")

    def test_role_single_use_from_resolved_reference(self):
        data = resolve_references({"name": "batch", "policies": ["p"],
                                   "single_use": "${SINGLE_USE}"},
                                  environ={"SINGLE_USE": "false"})
        self.assertFalse(Role.from_dict(data).single_use)
        self.assertTrue(Role.from_dict({"name": "app", "policies": ["p"]}).single_use)

    def test_role_single_use_garbage(self):
        with self.assertRaises(InvalidConfiguration):
            Role.from_dict({"name": "app", "policies": ["p"], "single_use": "nope"})


class TestPolicyModel(unittest.TestCase):

    def test_unknown_capability_rejected(self):
        with self.assertRaises(InvalidConfiguration):
            PolicyRule("secret/app/*", frozenset(["read", "sudo"]))

    def test_empty_capabilities_rejected(self):
        with self.assertRaises(InvalidConfiguration):
            PolicyRule("secret/app/*", frozenset())

    def test_wildcard_only_trailing(self):
        for pattern in ["secret/*/db", "secret/a*b", "*/app/db", "secret//db", ""]:
            with self.assertRaises(InvalidConfiguration, msg=pattern):
                PolicyRule(pattern, frozenset(["read"]))
        PolicyRule("secret/app/*", frozenset(["read"]))
        PolicyRule("secret/app/db*", frozenset(["read"]))

    def test_rules_are_an_ordered_set(self):
        rule = PolicyRule("secret/app/*", frozenset(["read"]))
        other = PolicyRule("secret/ops/*", frozenset(["list"]))
        policy = Policy("app", (rule, other, rule))
        self.assertEqual(policy.rules, (rule, other))

    def test_from_dict(self):
        policy = Policy.from_dict({"name": "app-read",
                                   "rules": [{"path": "secret/app/*",
                                              "capabilities": ["read", "list"]}]})
        self.assertEqual(policy.rules[0].capabilities, frozenset(["read", "list"]))
        self.assertEqual(Policy.from_dict(policy.to_dict()), policy)

    def test_role_ttl_ordering(self):
        with self.assertRaises(InvalidConfiguration):
            Role("app", frozenset(["p"]), token_ttl="2h", token_max_ttl="1h",
                 credential_ttl="30m")
        with self.assertRaises(InvalidConfiguration):
            Role("app", frozenset(), token_ttl="1h", token_max_ttl="1h", credential_ttl="30m")
        role = Role("app", "p", token_ttl="15m", token_max_ttl="1h", credential_ttl="30m")
        self.assertEqual(role.policies, frozenset(["p"]))
        self.assertEqual(role.token_ttl, timedelta(minutes=15))


class TestPatternMatching(unittest.TestCase):

    def test_exact_segments(self):
        rule = PolicyRule("secret/app/db", frozenset(["read"]))
        self.assertTrue(rule.matches("secret/app/db"))
        self.assertFalse(rule.matches("secret/app/dbx"))
        self.assertFalse(rule.matches("secret/app"))
        self.assertFalse(rule.matches("secret/app/db/extra"))

    def test_trailing_wildcard_stays_in_last_segment(self):
        rule = PolicyRule("secret/app/*", frozenset(["read"]))
        self.assertTrue(rule.matches("secret/app/db"))
        self.assertTrue(rule.matches("secret/app/cache"))
        self.assertFalse(rule.matches("secret/app/db/nested"))
        self.assertFalse(rule.matches("secret/other/db"))

    def test_prefix_wildcard(self):
        rule = PolicyRule("secret/app/db*", frozenset(["read"]))
        self.assertTrue(rule.matches("secret/app/db"))
        self.assertTrue(rule.matches("secret/app/db-replica"))
        self.assertFalse(rule.matches("secret/app/other"))


class TestEvaluate(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryPolicyStore()
        self.store.put_policy(Policy("db-read", (PolicyRule("secret/app/db*",
                                                            frozenset(["read"])),)))
        self.store.put_policy(Policy("app-write", (PolicyRule("secret/app/*",
                                                              frozenset(["write"])),)))

    def test_deny_by_default(self):
        token = make_token(["db-read"])
        self.assertTrue(self.store.evaluate(token, "secret/app/db", READ, NOW))
        self.assertFalse(self.store.evaluate(token, "secret/app/other", READ, NOW))
        self.assertFalse(self.store.evaluate(token, "secret/app/db", WRITE, NOW))

    def test_union_of_policies(self):
        token = make_token(["db-read", "app-write"])
        self.assertTrue(self.store.evaluate(token, "secret/app/db", READ, NOW))
        self.assertTrue(self.store.evaluate(token, "secret/app/db", WRITE, NOW))
        self.assertTrue(self.store.evaluate(token, "secret/app/other", WRITE, NOW))
        self.assertFalse(self.store.evaluate(token, "secret/app/other", READ, NOW))

    def test_rule_order_does_not_matter(self):
        narrow = PolicyRule("secret/app/db", frozenset(["list"]))
        wide = PolicyRule("secret/app/*", frozenset(["read"]))
        self.store.put_policy(Policy("forward", (narrow, wide)))
        self.store.put_policy(Policy("reverse", (wide, narrow)))
        for name in ["forward", "reverse"]:
            token = make_token([name])
            self.assertTrue(self.store.evaluate(token, "secret/app/db", READ, NOW))
            self.assertTrue(self.store.evaluate(token, "secret/app/db", LIST, NOW))

    def test_expired_token_grants_nothing(self):
        token = make_token(["db-read"])
        self.assertFalse(self.store.evaluate(token, "secret/app/db", READ,
                                             NOW + timedelta(minutes=15)))

    def test_missing_policy_grants_nothing(self):
        token = make_token(["deleted-policy"])
        self.assertFalse(self.store.evaluate(token, "secret/app/db", READ, NOW))

    def test_authorize_raises(self):
        token = make_token(["db-read"])
        self.store.authorize(token, "secret/app/db", READ, NOW)
        with self.assertRaises(CapabilityDenied) as ctx:
            self.store.authorize(token, "secret/app/db", DELETE, NOW)
        self.assertEqual(ctx.exception.capability, DELETE)
        self.assertEqual(ctx.exception.path, "secret/app/db")
