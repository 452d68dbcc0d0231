# -*- coding: utf-8 -*-
"""gcp_secretmanager_bootstrap

Idempotent bootstrap of a secret store with application secrets, an access policy
and a role, plus issuance of short lived capability scoped credentials so
applications never carry long lived secrets in source, images or env files.

"""

from gcp_secretmanager_bootstrap.exceptions import BootstrapError, \
    ConfigurationConflict, \
    InvalidConfiguration, \
    NotFound, \
    SecretVersionDeleted, \
    CredentialError, \
    CredentialExpired, \
    CredentialAlreadyUsed, \
    TokenExpired, \
    BackendUnavailable, \
    CapabilityDenied
from gcp_secretmanager_bootstrap.models import SecretDocument, \
    PolicyRule, \
    Policy, \
    Role, \
    Credential, \
    AccessToken, \
    MountSpec, \
    parse_flag, \
    parse_ttl
from gcp_secretmanager_bootstrap.backends import SecretBackend, SecretEngine, PolicyStore, AuthBackend
from gcp_secretmanager_bootstrap.memory import InMemoryBackend, \
    InMemorySecretEngine, \
    InMemoryPolicyStore, \
    InMemoryAuthBackend
from gcp_secretmanager_bootstrap.audit import AuditEvent, AuditLog, RecordingSink
from gcp_secretmanager_bootstrap.config import BootstrapSettings, ConfigLoader, resolve_references
from gcp_secretmanager_bootstrap.credentials import CredentialIssuer
from gcp_secretmanager_bootstrap.bootstrap import Bootstrapper, \
    DesiredState, \
    SecretSpec, \
    ReconcileReport, \
    StepResult, \
    load_desired_state
from gcp_secretmanager_bootstrap.readiness import ReadinessGate, run_reconcile, wait_until_ready
from gcp_secretmanager_bootstrap.render import render_environment
from gcp_secretmanager_bootstrap.cache_secret import ScopedSecretReader
from gcp_secretmanager_bootstrap.decorators import InjectSecretFields, InjectKeywordedSecretFields
from gcp_secretmanager_bootstrap.gcp import GCPSecretEngine, gcp_engine_factory
from ._version import __version__

__all__ = ["__version__",
           "BootstrapError",
           "ConfigurationConflict",
           "InvalidConfiguration",
           "NotFound",
           "SecretVersionDeleted",
           "CredentialError",
           "CredentialExpired",
           "CredentialAlreadyUsed",
           "TokenExpired",
           "BackendUnavailable",
           "CapabilityDenied",
           "SecretDocument",
           "PolicyRule",
           "Policy",
           "Role",
           "Credential",
           "AccessToken",
           "MountSpec",
           "parse_flag",
           "parse_ttl",
           "SecretBackend",
           "SecretEngine",
           "PolicyStore",
           "AuthBackend",
           "InMemoryBackend",
           "InMemorySecretEngine",
           "InMemoryPolicyStore",
           "InMemoryAuthBackend",
           "AuditEvent",
           "AuditLog",
           "RecordingSink",
           "BootstrapSettings",
           "ConfigLoader",
           "resolve_references",
           "CredentialIssuer",
           "Bootstrapper",
           "DesiredState",
           "SecretSpec",
           "ReconcileReport",
           "StepResult",
           "load_desired_state",
           "ReadinessGate",
           "run_reconcile",
           "wait_until_ready",
           "render_environment",
           "ScopedSecretReader",
           "InjectSecretFields",
           "InjectKeywordedSecretFields",
           "GCPSecretEngine",
           "gcp_engine_factory"]
