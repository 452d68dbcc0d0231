# -*- coding: utf-8 -*-
"""Data model shared by the bootstrap, issuance and evaluation code.

All entities are immutable dataclasses. Backends swap whole objects rather than
mutating them so readers never observe a partially applied policy or role.

TTL values accept a ``timedelta``, a number of seconds or a duration string made
of ``<int><unit>`` parts where unit is one of ``s``, ``m``, ``h`` or ``d``,
for example ``"30m"`` or ``"2h30m"``.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import timedelta

from dateutil import parser

from .exceptions import InvalidConfiguration

READ = "read"
WRITE = "write"
LIST = "list"
DELETE = "delete"
CAPABILITIES = frozenset([READ, WRITE, LIST, DELETE])

ENABLED = "enabled"
DELETED = "deleted"
DESTROYED = "destroyed"

WILDCARD = "*"

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")
_DURATION_RE = re.compile(r"(\d+)([smhd])")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_ttl(value):
    """Convert a TTL setting into a ``timedelta``.

    :param value: timedelta, int/float seconds or a duration string like "15m"
    :return: timedelta
    :raises InvalidConfiguration: when the value cannot be parsed or is negative
    """
    if isinstance(value, timedelta):
        ttl = value
    elif isinstance(value, bool):
        raise InvalidConfiguration(f"ttl {value!r} is not a duration")
    elif isinstance(value, (int, float)):
        try:
            ttl = timedelta(seconds=value)
        except (ValueError, OverflowError):
            raise InvalidConfiguration(f"ttl {value!r} is not a finite duration") from None
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.isdecimal():
            ttl = parse_ttl(int(text))
        else:
            parts = _DURATION_RE.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise InvalidConfiguration(f"ttl {value!r} is not a duration")
            kwargs = {}
            for number, unit in parts:
                key = _DURATION_UNITS[unit]
                kwargs[key] = kwargs.get(key, 0) + int(number)
            try:
                ttl = timedelta(**kwargs)
            except OverflowError:
                raise InvalidConfiguration(f"ttl {value!r} is too large") from None
    else:
        raise InvalidConfiguration(f"ttl {value!r} is not a duration")

    if ttl < timedelta(0):
        raise InvalidConfiguration(f"ttl {value!r} is negative")
    return ttl


def parse_flag(value, name):
    """Accept a bool or the strings "true" and "false", as left by ${VAR} resolution."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise InvalidConfiguration(f"{name} {value!r} is not true or false")


def split_path(path):
    """Split a secret path into its segments, rejecting empty or malformed ones."""
    if not isinstance(path, str) or not path:
        raise InvalidConfiguration(f"path {path!r} must be a non empty string")
    segments = path.split("/")
    for segment in segments:
        if not _SEGMENT_RE.match(segment):
            raise InvalidConfiguration(f"path {path!r} has invalid segment {segment!r}")
    return segments


def path_within(path, mount_path):
    """True if ``path`` lies below ``mount_path``."""
    path_segments = split_path(path)
    mount_segments = split_path(mount_path)
    return len(path_segments) > len(mount_segments) and \
        path_segments[:len(mount_segments)] == mount_segments


@dataclass(frozen=True)
class MountSpec:
    path: str
    type: str

    def __post_init__(self):
        split_path(self.path)
        if not self.type:
            raise InvalidConfiguration(f"mount {self.path} has no type")

    @classmethod
    def from_dict(cls, data, default_type):
        if isinstance(data, str):
            return cls(path=data, type=default_type)
        return cls(path=data["path"], type=data.get("type", default_type))


@dataclass(frozen=True)
class SecretDocument:
    path: str
    version: int
    fields: dict
    created_time: object = None
    state: str = ENABLED

    @property
    def readable(self):
        return self.state == ENABLED

    def metadata(self):
        """Copy of this document without its secret material."""
        return replace(self, fields={})


@dataclass(frozen=True)
class PolicyRule:
    """A single path-pattern to capability-set grant.

    Only the last segment of a pattern may end in ``*`` which matches any
    suffix of that one segment; every other segment must match exactly.
    """
    path_pattern: str
    capabilities: frozenset

    def __post_init__(self):
        capabilities = frozenset(self.capabilities)
        unknown = capabilities - CAPABILITIES
        if unknown:
            raise InvalidConfiguration(
                f"policy rule {self.path_pattern} has unknown capabilities {sorted(unknown)}")
        if not capabilities:
            raise InvalidConfiguration(f"policy rule {self.path_pattern} grants nothing")
        object.__setattr__(self, "capabilities", capabilities)

        segments = self.path_pattern.split("/") if isinstance(self.path_pattern, str) else None
        if not segments:
            raise InvalidConfiguration(f"path pattern {self.path_pattern!r} is empty")
        for num, segment in enumerate(segments):
            literal = segment
            if num == len(segments) - 1 and segment.endswith(WILDCARD):
                literal = segment[:-1]
                if not literal:
                    continue
            if not _SEGMENT_RE.match(literal):
                raise InvalidConfiguration(
                    f"path pattern {self.path_pattern!r} has invalid segment {segment!r},"
                    f" wildcard only allowed at the end of the last segment")

    def matches(self, path):
        pattern_segments = self.path_pattern.split("/")
        path_segments = path.split("/")
        if len(pattern_segments) != len(path_segments):
            return False
        for pattern_segment, path_segment in zip(pattern_segments[:-1], path_segments[:-1]):
            if pattern_segment != path_segment:
                return False
        last_pattern, last_path = pattern_segments[-1], path_segments[-1]
        if last_pattern.endswith(WILDCARD):
            return last_path.startswith(last_pattern[:-1]) and last_path != ""
        return last_pattern == last_path

    def allows(self, path, capability):
        return capability in self.capabilities and self.matches(path)

    def to_dict(self):
        return {"path": self.path_pattern, "capabilities": sorted(self.capabilities)}


@dataclass(frozen=True)
class Policy:
    name: str
    rules: tuple

    def __post_init__(self):
        if not self.name:
            raise InvalidConfiguration("policy must have a name")
        # ordered set, first occurrence wins
        unique = []
        for rule in self.rules:
            if rule not in unique:
                unique.append(rule)
        object.__setattr__(self, "rules", tuple(unique))

    def allows(self, path, capability):
        return any(rule.allows(path, capability) for rule in self.rules)

    @classmethod
    def from_dict(cls, data):
        rules = data.get("rules")
        if not isinstance(rules, list):
            raise InvalidConfiguration(f"policy {data.get('name')} rules must be a list")
        return cls(name=data.get("name"),
                   rules=tuple(PolicyRule(path_pattern=rule["path"],
                                          capabilities=frozenset(rule["capabilities"]))
                               for rule in rules))

    def to_dict(self):
        return {"name": self.name, "rules": [rule.to_dict() for rule in self.rules]}


@dataclass(frozen=True)
class Role:
    name: str
    policies: frozenset
    token_ttl: timedelta
    token_max_ttl: timedelta
    credential_ttl: timedelta
    single_use: bool = True

    def __post_init__(self):
        if not self.name:
            raise InvalidConfiguration("role must have a name")
        policies = frozenset([self.policies]) if isinstance(self.policies, str) \
            else frozenset(self.policies)
        if not policies:
            raise InvalidConfiguration(f"role {self.name} must attach at least one policy")
        object.__setattr__(self, "policies", policies)
        for attr in ("token_ttl", "token_max_ttl", "credential_ttl"):
            object.__setattr__(self, attr, parse_ttl(getattr(self, attr)))
        if self.token_ttl > self.token_max_ttl:
            raise InvalidConfiguration(
                f"role {self.name} token_ttl {self.token_ttl} exceeds token_max_ttl"
                f" {self.token_max_ttl}")

    @classmethod
    def from_dict(cls, data):
        policies = data.get("policies", data.get("policy"))
        token_ttl = data.get("token_ttl", "1h")
        return cls(name=data.get("name"),
                   policies=policies or frozenset(),
                   token_ttl=token_ttl,
                   token_max_ttl=data.get("token_max_ttl", token_ttl),
                   credential_ttl=data.get("credential_ttl", "4h"),
                   single_use=parse_flag(data.get("single_use", True), "single_use"))


@dataclass(frozen=True)
class Credential:
    role_name: str
    role_id: str
    secret_id: str
    issued_at: object
    expires_at: object
    single_use: bool = True
    used: bool = False

    def expired(self, now):
        return now >= self.expires_at

    def to_dict(self):
        return {"role_name": self.role_name,
                "role_id": self.role_id,
                "secret_id": self.secret_id,
                "issued_at": self.issued_at.isoformat(),
                "expires_at": self.expires_at.isoformat(),
                "single_use": self.single_use,
                "used": self.used}

    @classmethod
    def from_dict(cls, data):
        return cls(role_name=data["role_name"],
                   role_id=data["role_id"],
                   secret_id=data["secret_id"],
                   issued_at=parser.isoparse(data["issued_at"]),
                   expires_at=parser.isoparse(data["expires_at"]),
                   single_use=data.get("single_use", True),
                   used=data.get("used", False))

    def __repr__(self):
        return (f"Credential(role_name={self.role_name!r}, role_id={self.role_id!r}, "
                f"secret_id='***', expires_at={self.expires_at.isoformat()})")


@dataclass(frozen=True)
class AccessToken:
    token: str
    role_name: str
    policies: frozenset
    issued_at: object
    expires_at: object
    max_expires_at: object = field(default=None)

    def valid(self, now):
        return now < self.expires_at

    def ttl(self, now):
        return max(self.expires_at - now, timedelta(0))

    def __repr__(self):
        return (f"AccessToken(role_name={self.role_name!r}, policies={sorted(self.policies)}, "
                f"expires_at={self.expires_at.isoformat()})")
