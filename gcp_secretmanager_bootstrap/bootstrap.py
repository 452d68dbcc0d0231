# -*- coding: utf-8 -*-
"""
Idempotent bootstrap of a secret store from a desired state description.

A reconcile is an ordered list of steps

enable secret engine - mount the secret engine unless a compatible one is there
enable auth          - mount the auth backend unless a compatible one is there
write secret         - one step per document, adds a version only if fields differ
write policy         - replace the named policy as a whole if it differs
write role           - create or update the role, its role id is kept
issue credential     - optional, mint a fresh secret id for the role

There is no transaction around the steps. Every step reads current backend state
before acting so a reconcile that crashed or timed out half way is completed by
running it again. Transient ``BackendUnavailable`` failures are retried per step.

The desired state is json shaped, for example

{
    "secret_engine": {"path": "secret", "type": "kv"},
    "auth": {"path": "approle", "type": "approle"},
    "secrets": [
        {"path": "secret/app/db", "fields": {"DB_USER": "app", "DB_PASSWORD": "${DB_PASSWORD}"}}
    ],
    "policy": {"name": "app-read", "rules": [{"path": "secret/app/*", "capabilities": ["read"]}]},
    "role": {"name": "app", "policies": ["app-read"], "token_ttl": "15m",
             "token_max_ttl": "1h", "credential_ttl": "30m"},
    "issue_credential": true
}
"""

import logging
import time
from dataclasses import dataclass, field

from .audit import FAILURE, SUCCESS, AuditLog
from .backends import AUTH_MOUNT, SECRET_MOUNT
from .config import BootstrapSettings, ConfigLoader, resolve_references
from .credentials import CredentialIssuer
from .exceptions import BackendUnavailable, ConfigurationConflict, InvalidConfiguration, \
    NotFound
from .models import MountSpec, Policy, Role, parse_flag, path_within

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
ISSUED = "issued"


@dataclass(frozen=True)
class SecretSpec:
    path: str
    fields: dict


@dataclass(frozen=True)
class DesiredState:
    secret_engine: MountSpec
    auth: MountSpec
    secrets: tuple
    policy: Policy
    role: Role
    issue_credential: bool = False

    def __post_init__(self):
        if not self.secrets:
            raise InvalidConfiguration("desired state must contain at least one secret")
        seen = set()
        for spec in self.secrets:
            if not path_within(spec.path, self.secret_engine.path):
                raise InvalidConfiguration(
                    f"secret {spec.path} is not under engine mount {self.secret_engine.path}")
            if not all(isinstance(key, str) and isinstance(value, str)
                       for key, value in spec.fields.items()):
                raise InvalidConfiguration(f"secret {spec.path} fields must be strings")
            if spec.path in seen:
                raise InvalidConfiguration(f"secret {spec.path} is listed more than once")
            seen.add(spec.path)
        if self.policy.name not in self.role.policies:
            raise InvalidConfiguration(
                f"role {self.role.name} does not attach policy {self.policy.name}")

    @classmethod
    def from_dict(cls, data):
        try:
            return cls(secret_engine=MountSpec.from_dict(data.get("secret_engine", "secret"), "kv"),
                       auth=MountSpec.from_dict(data.get("auth", "approle"), "approle"),
                       secrets=tuple(SecretSpec(path=secret["path"], fields=dict(secret["fields"]))
                                     for secret in data.get("secrets", [])),
                       policy=Policy.from_dict(data["policy"]),
                       role=Role.from_dict(data["role"]),
                       issue_credential=parse_flag(data.get("issue_credential", False),
                                                   "issue_credential"))
        except (KeyError, TypeError, AttributeError) as e:
            raise InvalidConfiguration(f"desired state is malformed {e!r}") from None


@dataclass(frozen=True)
class StepResult:
    name: str
    target: str
    outcome: str
    attempts: int = 1
    version: int = None


@dataclass
class ReconcileReport:
    steps: list = field(default_factory=list)
    role_id: str = None
    credential: object = None

    @property
    def changed(self):
        return any(step.outcome in (CREATED, UPDATED) for step in self.steps)

    def outcome(self, name, target=None):
        for step in self.steps:
            if step.name == name and (target is None or step.target == target):
                return step.outcome
        return None


class Bootstrapper:
    """Brings a ``SecretBackend`` to a ``DesiredState``.

    Args:
        backend (SecretBackend): the secret store, injected so tests can use a fake.
        settings (BootstrapSettings): retry behaviour, defaults to ``BootstrapSettings()``.
        audit (AuditLog): receives one event per step attempt.
        clock (callable): returns the current aware datetime.
        sleep (callable): used between retries of a step.
    """

    def __init__(self, backend, settings=None, audit=None, clock=None, sleep=time.sleep):
        self._backend = backend
        self._settings = settings or BootstrapSettings()
        self._audit = audit or AuditLog(clock=clock)
        self._clock = clock
        self._sleep = sleep

    @property
    def backend(self):
        return self._backend

    @property
    def audit(self):
        return self._audit

    def issuer(self, auth_path):
        """``CredentialIssuer`` for the auth backend mounted at ``auth_path``."""
        return CredentialIssuer(self._backend.auth_backend(auth_path),
                                clock=self._clock,
                                audit=self._audit)

    def reconcile(self, desired_state):
        """Converge the backend on ``desired_state`` and report what each step did.

        Raises:
            ConfigurationConflict: a mount exists with an incompatible type.
            BackendUnavailable: a step kept failing transiently, safe to rerun.
            BootstrapError: any other failure, the steps before it stay applied.
        """
        report = ReconcileReport()
        logging.getLogger(__name__).info(
            f"Reconciling engine {desired_state.secret_engine.path} role {desired_state.role.name}")

        report.steps.append(self._run_step(
            "enable_secret_engine", desired_state.secret_engine.path,
            lambda: self._enable_mount(SECRET_MOUNT, desired_state.secret_engine)))
        report.steps.append(self._run_step(
            "enable_auth", desired_state.auth.path,
            lambda: self._enable_mount(AUTH_MOUNT, desired_state.auth)))

        engine_path = desired_state.secret_engine.path
        for spec in desired_state.secrets:
            report.steps.append(self._run_step(
                "write_secret", spec.path,
                lambda spec=spec: self._write_secret(engine_path, spec)))

        report.steps.append(self._run_step(
            "write_policy", desired_state.policy.name,
            lambda: self._write_policy(desired_state.policy)))

        def _role():
            outcome, _ = self._write_role(desired_state.auth.path, desired_state.role)
            report.role_id = self._backend.auth_backend(desired_state.auth.path) \
                .get_role_id(desired_state.role.name)
            return outcome, None

        report.steps.append(self._run_step("write_role", desired_state.role.name, _role))

        if desired_state.issue_credential:
            def _issue():
                issuer = self.issuer(desired_state.auth.path)
                report.credential = issuer.issue_credential(desired_state.role.name)
                return ISSUED, None

            report.steps.append(self._run_step("issue_credential", desired_state.role.name,
                                               _issue))

        logging.getLogger(__name__).info(
            f"Reconciled role {desired_state.role.name} changed={report.changed}")
        return report

    def _run_step(self, name, target, action):
        attempts = self._settings.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                outcome, version = action()
            except BackendUnavailable as e:
                self._audit.emit(f"reconcile.{name}", target, FAILURE, attempt=attempt,
                                 error=type(e).__name__)
                if attempt >= attempts:
                    raise
                logging.getLogger(__name__).warning(
                    f"Step {name} for {target} failed attempt {attempt} of {attempts}: {e}")
                self._sleep(self._settings.retry_delay)
                continue
            except Exception as e:
                self._audit.emit(f"reconcile.{name}", target, FAILURE, attempt=attempt,
                                 error=type(e).__name__)
                raise
            self._audit.emit(f"reconcile.{name}", target, SUCCESS, attempt=attempt,
                             result=outcome)
            return StepResult(name=name, target=target, outcome=outcome, attempts=attempt,
                              version=version)

    def _enable_mount(self, kind, mount):
        existing = self._backend.list_mounts(kind).get(mount.path)
        if existing == mount.type:
            return UNCHANGED, None
        if existing is not None:
            raise ConfigurationConflict(kind, mount.path, existing, mount.type)
        try:
            self._backend.enable_mount(kind, mount.path, mount.type)
        except ConfigurationConflict:
            # someone else enabled it between our check and the write
            if self._backend.list_mounts(kind).get(mount.path) == mount.type:
                return UNCHANGED, None
            raise
        return CREATED, None

    def _write_secret(self, engine_path, spec):
        engine = self._backend.secret_engine(engine_path)
        current = engine.latest_readable(spec.path)
        if current is not None and current.fields == spec.fields:
            return UNCHANGED, current.version
        version = engine.put(spec.path, spec.fields)
        logging.getLogger(__name__).info(f"Wrote secret {spec.path} version {version}")
        return (CREATED if version == 1 else UPDATED), version

    def _write_policy(self, policy):
        store = self._backend.policies
        try:
            current = store.get_policy(policy.name)
        except NotFound:
            current = None
        if current == policy:
            return UNCHANGED, None
        store.put_policy(policy)
        return (CREATED if current is None else UPDATED), None

    def _write_role(self, auth_path, role):
        auth = self._backend.auth_backend(auth_path)
        try:
            current = auth.get_role(role.name)
        except NotFound:
            current = None
        if current == role:
            return UNCHANGED, None
        auth.put_role(role)
        return (CREATED if current is None else UPDATED), None


def load_desired_state(source, environ=None, loader=None):
    """Load a ``DesiredState`` from a json file or ``gs://`` object.

    ``${NAME}`` references in the document are resolved from ``environ`` (defaults
    to the process environment) before validation.
    """
    loader = loader or ConfigLoader()
    return DesiredState.from_dict(resolve_references(loader.load(source), environ))
