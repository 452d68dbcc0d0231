# -*- coding: utf-8 -*-

class BootstrapError(Exception):
    """Base Error class."""


class ConfigurationConflict(BootstrapError):
    CUSTOM_ERROR_MESSAGE = "{} mount at {} is of type {} but desired type is {}"

    def __init__(self, kind, path, existing_type, desired_type):
        super(ConfigurationConflict, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(kind, path, existing_type, desired_type))
        self._kind = kind
        self._path = path
        self._existing_type = existing_type
        self._desired_type = desired_type

    @property
    def kind(self):
        return self._kind

    @property
    def path(self):
        return self._path

    @property
    def existing_type(self):
        return self._existing_type

    @property
    def desired_type(self):
        return self._desired_type


class InvalidConfiguration(BootstrapError):
    CUSTOM_ERROR_MESSAGE = "Invalid configuration {}"

    def __init__(self, reason):
        super(InvalidConfiguration, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(reason))
        self.reason = reason


class NotFound(BootstrapError):
    CUSTOM_ERROR_MESSAGE = "{} {} not found"

    def __init__(self, kind, name):
        super(NotFound, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(kind, name))
        self.kind = kind
        self.name = name


class SecretVersionDeleted(BootstrapError):
    CUSTOM_ERROR_MESSAGE = "Secret {} version {} has been {}"

    def __init__(self, path, version, destroyed=False):
        super(SecretVersionDeleted, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(path, version,
                                             "destroyed" if destroyed else "deleted"))
        self.path = path
        self.version = version
        self.destroyed = destroyed


class CredentialError(BootstrapError):
    """Terminal failure for a given secret id, a new credential must be issued."""


class CredentialExpired(CredentialError):
    CUSTOM_ERROR_MESSAGE = "Secret id for role {} expired at {}"

    def __init__(self, role_name, expires_at):
        super(CredentialExpired, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(role_name, expires_at.isoformat()))
        self.role_name = role_name
        self.expires_at = expires_at


class CredentialAlreadyUsed(CredentialError):
    CUSTOM_ERROR_MESSAGE = "Single use secret id for role {} has already been redeemed"

    def __init__(self, role_name):
        super(CredentialAlreadyUsed, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(role_name))
        self.role_name = role_name


class TokenExpired(BootstrapError):
    CUSTOM_ERROR_MESSAGE = "Access token for role {} expired at {}"

    def __init__(self, role_name, expires_at):
        super(TokenExpired, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(role_name, expires_at.isoformat()))
        self.role_name = role_name
        self.expires_at = expires_at


class BackendUnavailable(BootstrapError):
    CUSTOM_ERROR_MESSAGE = "Backend unavailable during {} error {}"

    def __init__(self, operation, error=None):
        super(BackendUnavailable, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(operation, str(error)))
        self._operation = operation
        self._error = error

    @property
    def operation(self):
        return self._operation

    @property
    def error(self):
        return self._error


class CapabilityDenied(BootstrapError):
    CUSTOM_ERROR_MESSAGE = "Role {} is not permitted to {} {}"

    def __init__(self, role_name, capability, path):
        super(CapabilityDenied, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(role_name, capability, path))
        self.role_name = role_name
        self.capability = capability
        self.path = path
