"""Error taxonomy for the Tabletop AI Assistant."""

from typing import Optional


class AssistantError(Exception):
    """Base class for all assistant errors.

    ``user_message`` is the short text that may be shown in the chat channel.
    """

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class UnknownCommand(AssistantError):
    """Raised when a chat command name is not registered."""

    def __init__(self, command_name: str):
        super().__init__(
            f"Unknown command: {command_name!r}",
            f'Command "{command_name}" not recognized.',
        )
        self.command_name = command_name


class InsufficientPermission(AssistantError):
    """Raised when a capability check fails."""

    def __init__(self, capability: str, message: Optional[str] = None):
        super().__init__(
            message or f"Insufficient permission: {capability} is required",
            f"Insufficient permission. Required permission: {capability}",
        )
        self.capability = capability


class UnknownLevel(AssistantError):
    """Raised when a permission level name is not registered."""

    def __init__(self, level: str):
        super().__init__(
            f"Permission level {level!r} not found",
            f'Permission level "{level}" not found.',
        )
        self.level = level


class InvalidArgument(AssistantError):
    """Raised for malformed arguments to permission or queue calls."""


class OperationFailure(AssistantError):
    """Raised when a handler or a queued operation fails.

    The original exception is kept on ``cause`` and chained as ``__cause__``.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        user_message = getattr(cause, "user_message", None) or message
        super().__init__(message, user_message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ProviderFailure(AssistantError):
    """Raised when the conversation provider cannot produce a response."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(
            message,
            "Sorry, something went wrong while processing your message. Please try again.",
        )
        self.provider = provider


class EntityStoreError(AssistantError):
    """Raised by entity store collaborators."""

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(message)
        self.collection = collection
