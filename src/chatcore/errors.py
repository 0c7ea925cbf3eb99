"""
Chat Core Errors

Exceptions raised by storages and services.
Permission denials are not exceptions; see models.access.ChatPermission.
"""


class ChatCoreError(Exception):
    """Base class for chat core errors"""


class ValidationError(ChatCoreError, ValueError):
    """A structural invariant was violated by the caller"""


class BackingStoreError(ChatCoreError):
    """The backing store failed (network, permission, conflict)"""

    def __init__(self, message: str, operation: str = ""):
        super().__init__(message)
        self.operation = operation
