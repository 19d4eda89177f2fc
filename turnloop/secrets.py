import os

from turnloop.errors import ConfigurationError

ENV_SCHEME = "env://"


def is_secret_reference(value: str) -> bool:
    return value.startswith(ENV_SCHEME)


def resolve_secret(value: str) -> str:
    """Resolve ``env://NAME`` to the value of environment variable NAME.

    Any other value is returned unchanged.
    """
    if not is_secret_reference(value):
        return value
    name = value[len(ENV_SCHEME) :]
    if not name:
        raise ConfigurationError(f"Empty environment variable name in secret reference: {value}")
    resolved = os.environ.get(name)
    if resolved is None:
        raise ConfigurationError(f"Environment variable {name} is not set")
    return resolved
