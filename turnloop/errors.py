class TurnloopError(Exception):
    """Base class for errors raised by the engine."""


class ConfigurationError(TurnloopError):
    """A backend is missing required configuration or cannot be constructed."""


class SessionError(TurnloopError):
    """The caller used a session in a way its current state does not allow."""


class NoModelSelectedError(SessionError):
    pass


class ProtocolViolationError(SessionError):
    pass


class SessionBusyError(SessionError):
    pass
