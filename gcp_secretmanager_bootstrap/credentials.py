# -*- coding: utf-8 -*-
"""Issue and redeem two part (role id, secret id) credentials.

The role id is stable for the lifetime of a role and is read, never generated, at
issue time. Each issue produces a fresh secret id bound to the role's credential
ttl. Redeeming a secret id yields a short lived ``AccessToken`` whose lifetime is
the role's token ttl and which can be renewed up to the role's token max ttl.

Expired or used secret ids are terminal, callers must issue a new credential.
Expiry is evaluated lazily against the clock, nothing runs in the background.
"""

import logging
import secrets
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from .audit import FAILURE, SUCCESS, AuditLog
from .exceptions import InvalidConfiguration, TokenExpired
from .models import AccessToken, Credential


class CredentialIssuer:
    """Owns the lifecycle of credentials for roles of one auth backend.

    Args:
        auth_backend (AuthBackend): where roles live and credentials are recorded.
        clock (callable): returns the current aware datetime.
        audit (AuditLog): receives one event per issue, redeem, renew or revoke.
        secret_id_factory (callable): generates secret ids, uuid4 by default.
        token_factory (callable): generates token values.
    """

    def __init__(self, auth_backend, clock=None, audit=None, secret_id_factory=None,
                 token_factory=None):
        self._auth = auth_backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._audit = audit or AuditLog(clock=self._clock)
        self._secret_id_factory = secret_id_factory or (lambda: str(uuid.uuid4()))
        self._token_factory = token_factory or (lambda: secrets.token_urlsafe(32))

    @property
    def auth_backend(self):
        return self._auth

    def _audited(self, operation, target, func, **detail):
        try:
            result = func()
        except Exception as e:
            self._audit.emit(operation, target, FAILURE, error=type(e).__name__, **detail)
            raise
        self._audit.emit(operation, target, SUCCESS, **detail)
        return result

    def issue_credential(self, role_name):
        """Return a new ``Credential`` for ``role_name``.

        Raises:
            NotFound: the role does not exist.
            InvalidConfiguration: the role has no policy attached.
        """

        def _issue():
            role = self._auth.get_role(role_name)
            if not role.policies:
                raise InvalidConfiguration(f"role {role_name} has no policies attached")
            role_id = self._auth.get_role_id(role_name)
            issued_at = self._clock()
            credential = Credential(role_name=role_name,
                                    role_id=role_id,
                                    secret_id=self._secret_id_factory(),
                                    issued_at=issued_at,
                                    expires_at=issued_at + role.credential_ttl,
                                    single_use=role.single_use)
            self._auth.store_credential(credential)
            logging.getLogger(__name__).info(
                f"Issued secret id for role {role_name} expiring {credential.expires_at.isoformat()}")
            return credential

        return self._audited("issue_credential", role_name, _issue)

    def redeem_credential(self, role_id, secret_id):
        """Exchange a role id and secret id for an ``AccessToken``.

        Raises:
            NotFound: the role id or secret id is unknown.
            CredentialExpired: the secret id is past its expiry.
            CredentialAlreadyUsed: the secret id is single use and was redeemed before.
        """

        def _redeem():
            now = self._clock()
            role, _credential = self._auth.consume_credential(role_id, secret_id, now)
            max_expires_at = now + role.token_max_ttl
            token = AccessToken(token=self._token_factory(),
                                role_name=role.name,
                                policies=role.policies,
                                issued_at=now,
                                expires_at=min(now + role.token_ttl, max_expires_at),
                                max_expires_at=max_expires_at)
            logging.getLogger(__name__).info(
                f"Redeemed secret id for role {role.name} token expires "
                f"{token.expires_at.isoformat()}")
            return token

        return self._audited("redeem_credential", role_id, _redeem)

    def renew_token(self, token):
        """Extend an unexpired token by its role's token ttl, never past its max ttl.

        Raises:
            TokenExpired: the token already expired.
            NotFound: the role was removed.
        """

        def _renew():
            now = self._clock()
            if not token.valid(now):
                raise TokenExpired(token.role_name, token.expires_at)
            role = self._auth.get_role(token.role_name)
            max_expires_at = token.max_expires_at or token.issued_at + role.token_max_ttl
            return replace(token,
                           expires_at=min(now + role.token_ttl, max_expires_at),
                           max_expires_at=max_expires_at)

        return self._audited("renew_token", token.role_name, _renew)

    def revoke_credential(self, role_id, secret_id):
        """Make a secret id unusable, raises ``NotFound`` if it is unknown."""
        return self._audited("revoke_credential", role_id,
                             lambda: self._auth.revoke_credential(role_id, secret_id))
