"""Exception hierarchy for the webhook reconciliation service.

Every error raised inside validation, dispatch, mapping or persistence
derives from ReconcilerError. Processors log and re-raise; the single
outermost boundary in webhook/handler.py converts any of them into the
error-shaped webhook response.
"""

from typing import Optional


class ReconcilerError(Exception):
    """Base class for all reconciliation errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MalformedPayloadError(ReconcilerError):
    """Raised when a webhook body is not a parseable JSON object."""


class MissingDiscriminatorError(ReconcilerError):
    """Raised when a payload lacks the event discriminator field.

    Only raised when the registry is configured to gate processing on
    validation; process() itself treats a missing discriminator as a no-op.
    """


class UnsupportedWebhookTypeError(ReconcilerError):
    """Raised when no processor is registered for a webhook type.

    Attributes:
        webhook_type: The unrecognized webhook type token.
    """

    def __init__(self, webhook_type: str):
        self.webhook_type = webhook_type
        super().__init__(f"Unsupported webhook type: '{webhook_type}'")


class MappingError(ReconcilerError):
    """Raised when a required sub-document is missing or has the wrong shape."""


class StorePersistenceError(ReconcilerError):
    """Raised when the record store rejects a read or write.

    Wraps underlying driver errors to provide a consistent interface
    for error handling.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.original_error = original_error
        super().__init__(message)
