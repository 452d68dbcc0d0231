# -*- coding: utf-8 -*-
"""Backend contracts the bootstrapper and credential issuer are written against.

The backend is the single source of truth. Nothing in this package holds a lock
across calls to it; conflicting writes are serialised by the backend itself and
the last write wins.

A ``SecretBackend`` exposes three collaborators

secret engine  - versioned key/value documents addressed by path, one per mount
policy store   - named policies of path pattern to capability rules
auth backend   - roles, their stable role ids and issued secret ids, one per mount

``memory.InMemoryBackend`` implements all of them for tests and local development.
"""

from abc import ABC, abstractmethod

from .exceptions import CapabilityDenied, NotFound

SECRET_MOUNT = "secret"
AUTH_MOUNT = "auth"


class SecretEngine(ABC):
    """Versioned key/value namespace.

    Versions start at 1 and strictly increase per path. Deleting a version is a
    soft delete, it stays in the history but ordinary reads of it fail.
    """

    @abstractmethod
    def put(self, path, fields):
        """Store ``fields`` as a new version of ``path`` and return the version number."""

    @abstractmethod
    def get(self, path, version=None):
        """Return the ``SecretDocument`` at ``version`` or the highest version.

        Raises:
            NotFound: the path does not exist or version is above the current maximum.
            SecretVersionDeleted: the version was soft deleted or destroyed.
        """

    @abstractmethod
    def list_versions(self, path):
        """Return metadata (no fields) of every version of ``path`` oldest first."""

    @abstractmethod
    def delete_version(self, path, version):
        """Soft delete a version."""

    @abstractmethod
    def undelete_version(self, path, version):
        """Make a soft deleted version readable again."""

    @abstractmethod
    def destroy_version(self, path, version):
        """Permanently remove the secret material of a version, keeping its metadata."""

    @abstractmethod
    def list_paths(self, prefix=""):
        """Return the sorted paths that start with ``prefix``."""

    def latest_readable(self, path):
        """Highest version of ``path`` if it is readable, otherwise None."""
        versions = self.list_versions(path)
        if not versions or not versions[-1].readable:
            return None
        return self.get(path, versions[-1].version)


class PolicyStore(ABC):

    @abstractmethod
    def put_policy(self, policy):
        """Replace the named policy as a whole."""

    @abstractmethod
    def get_policy(self, name):
        """Return the named ``Policy`` or raise ``NotFound``."""

    @abstractmethod
    def list_policies(self):
        """Return the sorted policy names."""

    def evaluate(self, token, path, capability, now):
        """True iff some rule of some policy on ``token`` grants ``capability`` on ``path``.

        Deny by default. Rules are unioned so their order never matters. Expired
        tokens and policies that no longer exist grant nothing.
        """
        if not token.valid(now):
            return False
        for name in token.policies:
            try:
                policy = self.get_policy(name)
            except NotFound:
                continue
            if policy.allows(path, capability):
                return True
        return False

    def authorize(self, token, path, capability, now):
        """As ``evaluate`` but raises ``CapabilityDenied`` rather than returning False."""
        if not self.evaluate(token, path, capability, now):
            raise CapabilityDenied(token.role_name, capability, path)


class AuthBackend(ABC):
    """Role definitions and the secret ids issued against them."""

    @abstractmethod
    def put_role(self, role):
        """Create or replace a role, returning its role id.

        The role id is generated on first write and never changes afterwards.
        """

    @abstractmethod
    def get_role(self, name):
        """Return the named ``Role`` or raise ``NotFound``."""

    @abstractmethod
    def get_role_id(self, name):
        """Return the stable role id of the named role or raise ``NotFound``."""

    @abstractmethod
    def role_name_for_id(self, role_id):
        """Return the name of the role owning ``role_id`` or raise ``NotFound``."""

    @abstractmethod
    def list_roles(self):
        """Return the sorted role names."""

    @abstractmethod
    def store_credential(self, credential):
        """Record a freshly issued credential."""

    @abstractmethod
    def consume_credential(self, role_id, secret_id, now):
        """Validate and consume a secret id atomically.

        Checks existence, expiry and, for single use credentials, the used flag
        and sets it in one step so that concurrent callers see exactly one success.

        Returns:
            tuple: (Role, Credential) as they were before consumption.

        Raises:
            NotFound, CredentialExpired, CredentialAlreadyUsed
        """

    @abstractmethod
    def revoke_credential(self, role_id, secret_id):
        """Remove a secret id so it can no longer be redeemed."""


class SecretBackend(ABC):
    """A secret store with mountable secret engines and auth backends."""

    @abstractmethod
    def list_mounts(self, kind):
        """Return a dict of mount path to mount type for ``kind`` (secret or auth)."""

    @abstractmethod
    def enable_mount(self, kind, path, mount_type):
        """Enable a mount, failing if something is already mounted at ``path``."""

    @property
    @abstractmethod
    def policies(self):
        """The ``PolicyStore``."""

    @abstractmethod
    def secret_engine(self, path):
        """Return the ``SecretEngine`` mounted at ``path`` or raise ``NotFound``."""

    @abstractmethod
    def auth_backend(self, path):
        """Return the ``AuthBackend`` mounted at ``path`` or raise ``NotFound``."""
