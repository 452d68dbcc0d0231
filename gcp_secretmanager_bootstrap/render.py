# -*- coding: utf-8 -*-
"""Flatten secret fields into environment variable shaped pairs.

Persisting the result (an env file, the process environment, a mounted volume) is
left to the consuming process.
"""

import re

from .exceptions import InvalidConfiguration

_INVALID_CHARS_RE = re.compile(r"[^A-Z0-9_]")


def env_name(key, prefix=""):
    name = _INVALID_CHARS_RE.sub("_", f"{prefix}{key}".upper())
    if not name or name[0].isdigit():
        name = f"_{name}"
    return name


def render_environment(fields, prefix=""):
    """Map secret ``fields`` to environment variable names.

    :type fields: dict
    :param fields: field name to string value, e.g. ``SecretDocument.fields``
    :type prefix: str
    :param prefix: prepended to every variable name
    :return: dict of variable name to value
    :raises InvalidConfiguration: when two fields map to the same variable name
    """
    rendered = {}
    for key, value in fields.items():
        name = env_name(key, prefix)
        if name in rendered:
            raise InvalidConfiguration(f"fields collide on environment variable {name}")
        rendered[name] = str(value)
    return rendered
