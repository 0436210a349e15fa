from __future__ import annotations


class ChatBackendError(Exception):
    """Base class for errors raised by the chat backend core."""


class InvalidInputError(ChatBackendError, ValueError):
    pass


class NotFoundError(ChatBackendError, LookupError):
    pass


class BuildError(ChatBackendError):
    """A provider request could not be assembled from the available inputs."""


class ProviderError(ChatBackendError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamError(ProviderError):
    pass


class UpstreamTimeoutError(ProviderError):
    pass


class UnauthorizedError(ProviderError):
    pass
