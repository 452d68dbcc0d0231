# -*- coding: utf-8 -*-
"""Secret engine backed by Google Cloud Secret Manager.

Each path maps onto one GCP secret whose versions are the document versions.
Secret ids are the path segments joined with ``__`` behind an optional prefix, so
a path segment may not contain ``.`` or ``__``. The original path is kept in the
secret's ``path`` annotation. Payloads are utf-8 encoded json objects of string
fields, written with a crc32c checksum and verified on read.

Secret Manager states map onto document states

ENABLED   - enabled
DISABLED  - deleted, can be undeleted by enabling again
DESTROYED - destroyed, material gone for good

Server errors and rate limiting surface as ``BackendUnavailable`` so callers can
retry, a missing secret or version as ``NotFound``.
"""

import json
import logging
import re
import threading

import google.auth
import google_crc32c
from google.api_core import exceptions
from google.cloud import secretmanager, secretmanager_v1

from .backends import SecretEngine
from .exceptions import BackendUnavailable, InvalidConfiguration, NotFound, SecretVersionDeleted
from .models import DELETED, DESTROYED, ENABLED, SecretDocument, split_path

TRANSIENT_EXCEPTIONS = (exceptions.ServerError,
                        exceptions.TooManyRequests)

MANAGED_LABEL = "managed-by"
MANAGED_VALUE = "gcp-secretmanager-bootstrap"

_STATES = {
    secretmanager_v1.SecretVersion.State.ENABLED: ENABLED,
    secretmanager_v1.SecretVersion.State.DISABLED: DELETED,
    secretmanager_v1.SecretVersion.State.DESTROYED: DESTROYED,
}


def _checksum(data):
    crc32c = google_crc32c.Checksum()
    crc32c.update(data)
    return int(crc32c.hexdigest(), 16)


def _version_number(name):
    return int(re.search(r"/versions/([0-9]+)$", name).group(1))


class GCPSecretEngine(SecretEngine):
    """``SecretEngine`` storing documents as Secret Manager secret versions.

    Args:
        project_id (str, optional): project holding the secrets, defaults to the
            project of the credentials.
        prefix (str, optional): prepended to every secret id.
        _credentials_callback (callable, optional): returns (credentials, project_id),
            ``google.auth.default()`` is used otherwise.
    """

    def __init__(self, project_id=None, prefix="", _credentials_callback=None):
        self._project_id = project_id
        self._prefix = prefix
        self._credentials_callback = _credentials_callback
        self.ns = threading.local()

    @property
    def credentials(self):
        if not hasattr(self.ns, "_credentials"):
            if self._credentials_callback is not None:
                _credentials, _project_id = self._credentials_callback()
            else:
                _credentials, _project_id = google.auth.default()
            self.ns._credentials = _credentials
            self.ns._project_id = _project_id
        return self.ns._credentials

    @property
    def _client(self):
        if not hasattr(self.ns, "client"):
            self.ns.client = secretmanager.SecretManagerServiceClient(
                credentials=self.credentials
            )
        return self.ns.client

    @property
    def project_id(self):
        if self._project_id is None:
            _ = self.credentials
            self._project_id = self.ns._project_id
        return self._project_id

    def secret_id(self, path):
        segments = split_path(path)
        for segment in segments:
            if "." in segment or "__" in segment:
                raise InvalidConfiguration(
                    f"path {path} segment {segment} cannot be stored in secret manager")
        return self._prefix + "__".join(segments)

    def _secret_name(self, path):
        return f"projects/{self.project_id}/secrets/{self.secret_id(path)}"

    def _call(self, operation, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TRANSIENT_EXCEPTIONS as e:
            raise BackendUnavailable(operation, e) from e

    def _ensure_secret(self, path):
        try:
            self._call("create_secret", self._client.create_secret, request={
                "parent": f"projects/{self.project_id}",
                "secret_id": self.secret_id(path),
                "secret": {
                    "replication": {"automatic": {}},
                    "labels": {MANAGED_LABEL: MANAGED_VALUE},
                    "annotations": {"path": path},
                },
            })
            logging.getLogger(__name__).info(f"Created secret {self._secret_name(path)}")
        except exceptions.AlreadyExists:
            pass

    def put(self, path, fields):
        if not isinstance(fields, dict) or not all(
                isinstance(key, str) and isinstance(value, str) for key, value in fields.items()):
            raise InvalidConfiguration(f"secret {path} fields must map strings to strings")
        self._ensure_secret(path)
        data = json.dumps(fields, sort_keys=True).encode("utf8")
        response = self._call("add_secret_version", self._client.add_secret_version, request={
            "parent": self._secret_name(path),
            "payload": {"data": data, "data_crc32c": _checksum(data)},
        })
        return _version_number(response.name)

    def _list(self, path):
        request = secretmanager_v1.ListSecretVersionsRequest(parent=self._secret_name(path))
        try:
            return self._call("list_secret_versions", lambda: sorted(
                self._client.list_secret_versions(request=request),
                key=lambda d: _version_number(d.name)))
        except exceptions.NotFound:
            return []

    def _document(self, path, response, fields=None):
        return SecretDocument(path=path,
                              version=_version_number(response.name),
                              fields=fields or {},
                              created_time=response.create_time,
                              state=_STATES.get(response.state, DESTROYED))

    def list_versions(self, path):
        return [self._document(path, response) for response in self._list(path)]

    def _get_version(self, path, version):
        try:
            return self._call("get_secret_version", self._client.get_secret_version,
                              request={"name": f"{self._secret_name(path)}/versions/{version}"})
        except exceptions.NotFound:
            raise NotFound("secret version", f"{path}@{version}") from None

    def get(self, path, version=None):
        if version is None:
            versions = self._list(path)
            if not versions:
                raise NotFound("secret", path)
            response = versions[-1]
        else:
            response = self._get_version(path, version)

        document = self._document(path, response)
        if not document.readable:
            raise SecretVersionDeleted(path, document.version,
                                       destroyed=document.state == DESTROYED)

        access = self._call("access_secret_version", self._client.access_secret_version,
                            request={"name": response.name})
        data = access.payload.data
        if access.payload.data_crc32c and _checksum(data) != access.payload.data_crc32c:
            raise BackendUnavailable("access_secret_version",
                                     f"checksum mismatch for {path}@{document.version}")
        return self._document(path, response, fields=json.loads(data.decode("utf-8")))

    def _transition(self, operation, path, version):
        name = f"{self._secret_name(path)}/versions/{version}"
        try:
            self._call(operation, getattr(self._client, operation), request={"name": name})
        except exceptions.NotFound:
            raise NotFound("secret version", f"{path}@{version}") from None
        except exceptions.FailedPrecondition:
            # secret manager refuses state changes on destroyed versions
            raise SecretVersionDeleted(path, version, destroyed=True) from None
        logging.getLogger(__name__).info(f"{operation} on {name}")

    def delete_version(self, path, version):
        self._transition("disable_secret_version", path, version)

    def undelete_version(self, path, version):
        self._transition("enable_secret_version", path, version)

    def destroy_version(self, path, version):
        self._transition("destroy_secret_version", path, version)

    def list_paths(self, prefix=""):
        request = secretmanager_v1.ListSecretsRequest(
            parent=f"projects/{self.project_id}",
            filter=f"labels.{MANAGED_LABEL}={MANAGED_VALUE}")
        paths = []
        secrets = self._call("list_secrets", lambda: list(self._client.list_secrets(request=request)))
        for secret in secrets:
            path = secret.annotations.get("path")
            if path and path.startswith(prefix):
                paths.append(path)
        return sorted(paths)


def gcp_engine_factory(project_id=None, _credentials_callback=None):
    """Engine factory for ``InMemoryBackend(engine_factories=...)``.

    Every mount gets its own engine. Secret ids need no prefix as the mount path
    is already the first segment of every document path.
    """

    def _factory(path):
        return GCPSecretEngine(project_id=project_id,
                               _credentials_callback=_credentials_callback)

    return _factory
