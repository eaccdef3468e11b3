"""
Error taxonomy for queue operations.

Each error carries the HTTP status the web layer reports it with.
"""


class QueueError(Exception):
    """Base class for errors raised by queue operations."""

    status_code = 500


class ValidationError(QueueError):
    """Required input is missing or malformed."""

    status_code = 400


class NotFoundError(QueueError):
    """No request exists with the given id."""

    status_code = 404

    def __init__(self, request_id):
        super().__init__(f"Request {request_id} not found")
        self.request_id = request_id


class ReorderMismatchError(QueueError):
    """Submitted ids do not match the active queue exactly."""

    status_code = 400


class StorageError(QueueError):
    """The storage backend failed."""

    status_code = 500
