"""Decorators injecting secret fields read through a ``ScopedSecretReader``"""


class InjectSecretFields:
    """Decorator passing the fields of a secret document as the first argument"""

    def __init__(self, reader, path, version=None):
        """
        Constructs a decorator to inject the field mapping of a secret document.

        :type reader: gcp_secretmanager_bootstrap.ScopedSecretReader
        :param reader: Reader holding the access token used for the read

        :type path: str
        :param path: The secret path

        :type version: int
        :param version: Pinned version, latest if None
        """

        self.reader = reader
        self.path = path
        self.version = version

    def __call__(self, func):
        """
        Return a function with the secret fields injected as first argument.

        Fields are read on every call so ttl, token expiry and policy changes apply.
        """

        def _wrapped_func(*args, **kwargs):
            """
            Internal function to execute wrapped function
            """
            return func(self.reader.get_fields(self.path, self.version), *args, **kwargs)

        return _wrapped_func


class InjectKeywordedSecretFields:
    """Decorator mapping individual secret fields onto keyword arguments"""

    def __init__(self, reader, path, **kwargs):
        """
        Construct a decorator to inject keyword arguments resolved from secret fields.

        :type reader: gcp_secretmanager_bootstrap.ScopedSecretReader
        :param reader: Reader holding the access token used for the read

        :type path: str
        :param path: The secret path

        :type kwargs: dict
        :param kwargs: keyword argument of wrapped function to secret field name
        """

        self.reader = reader
        self.path = path
        self.kwarg_map = kwargs

    def __call__(self, func):
        """
        Return a function with injected keyword arguments from the secret.

        :type func: object
        :param func: function for injecting keyword arguments.
        :return The original function with injected keyword arguments
        """

        def _wrapped_func(*args, **kwargs):
            """
            Internal function to execute wrapped function
            """
            fields = self.reader.get_fields(self.path)
            resolved_kwargs = dict()
            for orig_kwarg, field_name in self.kwarg_map.items():
                try:
                    resolved_kwargs[orig_kwarg] = fields[field_name]
                except KeyError:
                    raise KeyError(
                        'Secret {0} does not contain field {1}'.format(self.path, field_name)) from None
            return func(*args, **resolved_kwargs, **kwargs)

        return _wrapped_func
