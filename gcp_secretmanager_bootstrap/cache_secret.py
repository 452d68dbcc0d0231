# -*- coding: utf-8 -*-
"""This modules implements request time secret reads through an access token.

Secrets are cached per path for ``ttl`` seconds. Unlike a polling cache nothing
runs in the background, an entry past its ttl is refreshed by the next read.
Every read, cached or not, is authorised against the token so an expired token
or a narrowed policy takes effect immediately.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone

from .models import READ
from .render import render_environment


class ScopedSecretReader:
    """Reads secret documents on behalf of an ``AccessToken``.

    :type engine: SecretEngine
    :param engine: secret engine holding the documents
    :type policies: PolicyStore
    :param policies: policy store used to authorise each read
    :type token: AccessToken
    :param token: token obtained from ``CredentialIssuer.redeem_credential``
    :type ttl: float
    :param ttl: seconds a fetched document is served from cache
    """

    def __init__(self, engine, policies, token, ttl=60.0, clock=None):
        assert ttl >= 0.0, "Cache ttl cannot be negative"
        self._engine = engine
        self._policies = policies
        self._token = token
        self._ttl = timedelta(seconds=ttl)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.lock = threading.Lock()
        self._cache = {}

    @property
    def token(self):
        return self._token

    @property
    def ttl(self):
        return self._ttl.total_seconds()

    def get_secret(self, path, version=None):
        """Return the ``SecretDocument`` at ``path``.

        Raises:
            CapabilityDenied: the token may not read ``path`` or has expired.
            NotFound, SecretVersionDeleted: as ``SecretEngine.get``.
        """
        now = self._clock()
        self._policies.authorize(self._token, path, READ, now)

        key = (path, version)
        with self.lock:
            cached = self._cache.get(key)
            if cached and now - cached[0] < self._ttl:
                return cached[1]

        document = self._engine.get(path, version)
        with self.lock:
            self._cache[key] = (now, document)
        logging.getLogger(__name__).debug(
            f"Fetched secret {path} version {document.version} for role {self._token.role_name}")
        return document

    def get_fields(self, path, version=None):
        return dict(self.get_secret(path, version).fields)

    def environment(self, paths, prefix=""):
        """Merge the fields of ``paths`` into one environment mapping, later paths win."""
        rendered = {}
        for path in paths:
            rendered.update(render_environment(self.get_fields(path), prefix))
        return rendered

    def invalidate_secret(self, path=None):
        with self.lock:
            if path is None:
                self._cache.clear()
            else:
                for key in [key for key in self._cache if key[0] == path]:
                    del self._cache[key]
