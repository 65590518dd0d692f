# Filename: neodrive/errors.py
from typing import Optional


class UpstreamError(Exception):
    """A hosted dependency (object store, payment processor) failed.

    ``public_message`` is what the client sees; the original error is kept on
    ``__cause__`` and only ever logged.
    """

    public_message = "Upstream service failed"

    def __init__(self, message: str, public_message: Optional[str] = None):
        super().__init__(message)
        if public_message:
            self.public_message = public_message


class StorageError(UpstreamError):
    public_message = "Storage operation failed"


class PaymentError(UpstreamError):
    public_message = "Payment processor request failed"


class ObjectNotFound(StorageError):
    public_message = "Stored object not found"
