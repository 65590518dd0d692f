# Filename: neodrive_client/errors.py


class ClientError(Exception):
    """Base class for everything the NeoDrive client raises."""


class APIError(ClientError):
    """The API answered with a non-2xx status (or could not be reached, status 0)."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class TransferError(ClientError):
    """The direct-to-storage transfer failed."""


class UploadCancelled(ClientError):
    pass


class UploadTimeout(ClientError):
    pass


class BatchRejected(ClientError):
    """A batch was refused before any item was created."""
