# -*- coding: utf-8 -*-
"""In memory implementation of the backend contracts.

Used for tests and local development. Every store serialises its own writes with
a lock which stands in for the serialisation a real secret store performs.
"""

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from .backends import AUTH_MOUNT, SECRET_MOUNT, AuthBackend, PolicyStore, SecretBackend, \
    SecretEngine
from .exceptions import ConfigurationConflict, CredentialAlreadyUsed, CredentialExpired, \
    InvalidConfiguration, NotFound, SecretVersionDeleted
from .models import DELETED, DESTROYED, ENABLED, SecretDocument, split_path


def utcnow():
    return datetime.now(timezone.utc)


def _validate_fields(path, fields):
    if not isinstance(fields, dict):
        raise InvalidConfiguration(f"secret {path} fields must be a mapping")
    for key, value in fields.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise InvalidConfiguration(f"secret {path} field {key!r} must map a string to a string")
    return dict(fields)


class InMemorySecretEngine(SecretEngine):

    def __init__(self, clock=utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._versions = {}

    def put(self, path, fields):
        split_path(path)
        fields = _validate_fields(path, fields)
        with self._lock:
            history = self._versions.setdefault(path, [])
            version = len(history) + 1
            history.append(SecretDocument(path=path, version=version, fields=fields,
                                          created_time=self._clock()))
        return version

    def _version(self, path, version):
        history = self._versions.get(path)
        if not history:
            raise NotFound("secret", path)
        if version is None:
            return history[-1]
        if version < 1 or version > len(history):
            raise NotFound("secret version", f"{path}@{version}")
        return history[version - 1]

    def get(self, path, version=None):
        with self._lock:
            document = self._version(path, version)
        if not document.readable:
            raise SecretVersionDeleted(path, document.version,
                                       destroyed=document.state == DESTROYED)
        return replace(document, fields=dict(document.fields))

    def list_versions(self, path):
        with self._lock:
            history = list(self._versions.get(path, []))
        return [document.metadata() for document in history]

    def _set_state(self, path, version, state, fields=None):
        with self._lock:
            document = self._version(path, version)
            if document.state == DESTROYED and state != DESTROYED:
                raise SecretVersionDeleted(path, version, destroyed=True)
            changes = {"state": state}
            if fields is not None:
                changes["fields"] = fields
            self._versions[path][version - 1] = replace(document, **changes)

    def delete_version(self, path, version):
        self._set_state(path, version, DELETED)

    def undelete_version(self, path, version):
        self._set_state(path, version, ENABLED)

    def destroy_version(self, path, version):
        self._set_state(path, version, DESTROYED, fields={})

    def list_paths(self, prefix=""):
        with self._lock:
            return sorted(path for path in self._versions if path.startswith(prefix))


class InMemoryPolicyStore(PolicyStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._policies = {}

    def put_policy(self, policy):
        # policies are immutable so the swap is atomic for readers
        with self._lock:
            self._policies[policy.name] = policy

    def get_policy(self, name):
        with self._lock:
            policy = self._policies.get(name)
        if policy is None:
            raise NotFound("policy", name)
        return policy

    def list_policies(self):
        with self._lock:
            return sorted(self._policies)


class InMemoryAuthBackend(AuthBackend):
    """Role and credential store held in process memory.

    Credentials expired for longer than ``retention`` are dropped whenever a new
    one is stored. Redeeming a dropped secret id reports ``NotFound``.
    """

    def __init__(self, id_factory=None, retention=timedelta(days=1)):
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._retention = retention
        self._lock = threading.Lock()
        self._roles = {}
        self._role_ids = {}
        self._role_names = {}
        self._credentials = {}

    def put_role(self, role):
        with self._lock:
            self._roles[role.name] = role
            role_id = self._role_ids.get(role.name)
            if role_id is None:
                role_id = self._id_factory()
                self._role_ids[role.name] = role_id
                self._role_names[role_id] = role.name
        return role_id

    def get_role(self, name):
        with self._lock:
            role = self._roles.get(name)
        if role is None:
            raise NotFound("role", name)
        return role

    def get_role_id(self, name):
        with self._lock:
            role_id = self._role_ids.get(name)
        if role_id is None:
            raise NotFound("role", name)
        return role_id

    def role_name_for_id(self, role_id):
        with self._lock:
            name = self._role_names.get(role_id)
        if name is None:
            raise NotFound("role id", role_id)
        return name

    def list_roles(self):
        with self._lock:
            return sorted(self._roles)

    def store_credential(self, credential):
        cutoff = credential.issued_at - self._retention
        with self._lock:
            stale = [key for key, stored in self._credentials.items()
                     if stored.expires_at <= cutoff]
            for key in stale:
                del self._credentials[key]
            self._credentials[(credential.role_id, credential.secret_id)] = credential
        if stale:
            logging.getLogger(__name__).debug(f"Dropped {len(stale)} expired credentials")

    def consume_credential(self, role_id, secret_id, now):
        with self._lock:
            role_name = self._role_names.get(role_id)
            credential = self._credentials.get((role_id, secret_id))
            if role_name is None or credential is None:
                raise NotFound("secret id for role id", role_id)
            if credential.expired(now):
                raise CredentialExpired(role_name, credential.expires_at)
            if credential.single_use:
                if credential.used:
                    raise CredentialAlreadyUsed(role_name)
                self._credentials[(role_id, secret_id)] = replace(credential, used=True)
            return self._roles[role_name], credential

    def revoke_credential(self, role_id, secret_id):
        with self._lock:
            if self._credentials.pop((role_id, secret_id), None) is None:
                raise NotFound("secret id for role id", role_id)

    def credentials_for(self, role_id):
        with self._lock:
            return [credential for (owner, _), credential in self._credentials.items()
                    if owner == role_id]


class InMemoryBackend(SecretBackend):
    """Secret store holding mounts, policies and auth backends in process memory.

    Everything is lost when the process exits, so it suits tests and local
    development. Production bootstraps mount engines backed by Secret Manager.

    Args:
        clock (callable): returns the current aware datetime, used for version times.
        engine_factories (dict): mount type to callable(path) building a ``SecretEngine``.
            Defaults to in memory ``kv`` engines.
        auth_factories (dict): mount type to callable(path) building an ``AuthBackend``.
            Defaults to in memory ``approle`` backends.
    """

    def __init__(self, clock=utcnow, engine_factories=None, auth_factories=None, id_factory=None):
        self._clock = clock
        self._lock = threading.Lock()
        self._mounts = {SECRET_MOUNT: {}, AUTH_MOUNT: {}}
        self._instances = {SECRET_MOUNT: {}, AUTH_MOUNT: {}}
        self._factories = {
            SECRET_MOUNT: engine_factories or {"kv": lambda path: InMemorySecretEngine(clock)},
            AUTH_MOUNT: auth_factories or {"approle": lambda path: InMemoryAuthBackend(id_factory)},
        }
        self._policies = InMemoryPolicyStore()

    def _check_kind(self, kind):
        if kind not in self._mounts:
            raise InvalidConfiguration(f"unknown mount kind {kind}")

    def list_mounts(self, kind):
        self._check_kind(kind)
        with self._lock:
            return dict(self._mounts[kind])

    def enable_mount(self, kind, path, mount_type):
        self._check_kind(kind)
        split_path(path)
        factory = self._factories[kind].get(mount_type)
        if factory is None:
            raise InvalidConfiguration(f"unsupported {kind} mount type {mount_type}")
        with self._lock:
            existing = self._mounts[kind].get(path)
            if existing is not None:
                raise ConfigurationConflict(kind, path, existing, mount_type)
            self._instances[kind][path] = factory(path)
            self._mounts[kind][path] = mount_type
        logging.getLogger(__name__).info(f"Enabled {kind} mount {path} of type {mount_type}")

    @property
    def policies(self):
        return self._policies

    def _instance(self, kind, path):
        with self._lock:
            instance = self._instances[kind].get(path)
        if instance is None:
            raise NotFound(f"{kind} mount", path)
        return instance

    def secret_engine(self, path):
        return self._instance(SECRET_MOUNT, path)

    def auth_backend(self, path):
        return self._instance(AUTH_MOUNT, path)
