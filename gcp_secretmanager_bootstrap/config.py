# -*- coding: utf-8 -*-
"""Configuration loading.

Desired state documents are utf-8 encoded json held either in a local file or in a
google cloud storage object addressed as ``gs://bucket/object``. They must not
carry secret material themselves, secret field values are written as
``${VARIABLE}`` and resolved from the process environment at load time.

Process level settings come from ``SECRET_BOOTSTRAP_*`` environment variables.
"""

import json
import logging
import os
import re
import threading
from dataclasses import dataclass

import google.auth
from google.api_core import exceptions
from google.cloud import storage

from .exceptions import BackendUnavailable, InvalidConfiguration
from .gcp import TRANSIENT_EXCEPTIONS

ENV_PREFIX = "SECRET_BOOTSTRAP_"

_REFERENCE_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_GCS_RE = re.compile(r"^gs://([^/]+)/(.+)$")


@dataclass(frozen=True)
class BootstrapSettings:
    max_attempts: int = 3
    retry_delay: float = 1.0
    readiness_timeout: float = 300.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise InvalidConfiguration("max_attempts must be at least 1")
        if self.retry_delay < 0 or self.readiness_timeout < 0:
            raise InvalidConfiguration("retry_delay and readiness_timeout must not be negative")

    @classmethod
    def from_environ(cls, environ=None):
        environ = os.environ if environ is None else environ
        kwargs = {}
        for name, convert in (("max_attempts", int),
                              ("retry_delay", float),
                              ("readiness_timeout", float)):
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None:
                continue
            try:
                kwargs[name] = convert(raw)
            except ValueError:
                raise InvalidConfiguration(
                    f"{ENV_PREFIX}{name.upper()}={raw!r} is not a valid {convert.__name__}") from None
        return cls(**kwargs)


def resolve_references(value, environ=None):
    """Replace every ``${NAME}`` inside strings of ``value`` with ``environ[NAME]``.

    Walks nested dicts and lists. Raises ``InvalidConfiguration`` naming the
    missing variable, never its would-be value.
    """
    environ = os.environ if environ is None else environ

    def _substitute(match):
        name = match.group(1)
        if name not in environ:
            raise InvalidConfiguration(f"environment variable {name} is not set")
        return environ[name]

    if isinstance(value, str):
        return _REFERENCE_RE.sub(_substitute, value)
    if isinstance(value, dict):
        return {key: resolve_references(item, environ) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_references(item, environ) for item in value]
    return value


class ConfigLoader:
    """Reads json config from a local path or a gcs object.

    Credentials are obtained lazily per thread from ``_credentials_callback`` or
    ``google.auth.default()`` and only when a gcs source is read.
    """

    def __init__(self, _credentials_callback=None):
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

    def load_config(self, bucket, blob_name):
        """Loads a json configuration object from google cloud storage.

        A missing or forbidden bucket or object is ``InvalidConfiguration``, server
        errors and rate limiting are ``BackendUnavailable``.
        """
        source = f"gs://{bucket}/{blob_name}"
        try:
            client = storage.Client(credentials=self.credentials)
            blob = client.get_bucket(bucket).get_blob(blob_name)
            if blob is None:
                raise InvalidConfiguration(f"config object {source} not found")
            content = blob.download_as_bytes()
        except (exceptions.NotFound, exceptions.Forbidden) as e:
            raise InvalidConfiguration(f"config object {source} is not readable: {e.message}") from e
        except TRANSIENT_EXCEPTIONS as e:
            raise BackendUnavailable("load_config", e) from e
        return json.loads(content.decode("utf-8"))

    def load(self, source):
        gcs_match = _GCS_RE.match(source)
        try:
            if gcs_match:
                data = self.load_config(gcs_match.group(1), gcs_match.group(2))
            else:
                with open(source, "r", encoding="utf-8") as fh:
                    data = json.load(fh)
        except json.decoder.JSONDecodeError as e:
            raise InvalidConfiguration(f"config {source} is not valid json: {e}") from None
        except FileNotFoundError:
            raise InvalidConfiguration(f"config {source} does not exist") from None
        if not isinstance(data, dict):
            raise InvalidConfiguration(f"config {source} must hold a json object")
        logging.getLogger(__name__).info(f"Loaded config from {source}")
        return data
