# cardmirror/core/errors.py

"""Exception hierarchy shared by the card sources, the API client and the engine."""


class CardMirrorError(Exception):
    """Base exception for all cardmirror errors."""
    pass


class AuthRequiredError(CardMirrorError):
    """No valid credential is available for an operation that needs one."""
    pass


class RemoteError(CardMirrorError):
    """The content service answered with a non-success response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(RemoteError):
    """A login, device-code or token-refresh request was rejected."""
    pass


class MetadataError(RemoteError):
    """A card document does not have the expected shape."""
    pass


class NetworkError(CardMirrorError):
    """Transport failure while talking to the content service."""
    pass


class NotFoundError(CardMirrorError):
    """An expected local file is absent."""
    pass


class AlreadyExistsError(CardMirrorError):
    """A write target already exists; writers never overwrite."""
    pass


class ConfigError(CardMirrorError):
    """The configuration file is unreadable or holds an invalid value."""
    pass
