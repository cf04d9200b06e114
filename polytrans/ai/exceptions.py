"""
AI Service Exceptions

Exception and error taxonomy shared by the transport layer and the engine.
Separated to avoid circular imports between the HTTP layer and the clients.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a failure, used to decide how it is reported and whether it is retried."""

    CONFIGURATION = "configuration"
    ROUTING = "routing"
    TRANSPORT = "transport"
    FORMAT = "format"
    WORKER_CRASH = "worker_crash"


class TranslationError(Exception):
    """Translation service error with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None,
                 kind: ErrorKind = ErrorKind.TRANSPORT):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.kind = kind
