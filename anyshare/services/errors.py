"""Errors raised by the share registry and its collaborators."""


class ShareError(Exception):
    """Base error with the status it maps to at the HTTP boundary."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code


class InvalidInputError(ShareError):
    """Missing text, malformed ttl or oversized payload."""
    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, error_code="INVALID_INPUT", status_code=400)


class ObjectNotFoundError(ShareError):
    def __init__(self, object_id: str):
        super().__init__(
            f"Object {object_id} not found",
            error_code="NOT_FOUND",
            status_code=404,
        )
        self.object_id = object_id


class ObjectExpiredError(ShareError):
    def __init__(self, object_id: str):
        super().__init__(
            f"Object {object_id} has expired",
            error_code="EXPIRED",
            status_code=410,
        )
        self.object_id = object_id


class DuplicateIdentifierError(ShareError):
    def __init__(self, object_id: str):
        super().__init__(f"Identifier {object_id} is already in use")
        self.object_id = object_id


class StorageError(ShareError):
    """Read, write or delete of a payload failed."""
    def __init__(self, message: str = "Storage operation failed", status_code: int = 500):
        super().__init__(message, error_code="STORAGE_ERROR", status_code=status_code)


class PayloadMissingError(StorageError):
    """The index knows the object but its payload file is gone."""
    def __init__(self, object_id: str):
        super().__init__(f"Payload for object {object_id} is missing", status_code=404)
        self.error_code = "PAYLOAD_MISSING"
        self.object_id = object_id


class SnapshotError(ShareError):
    """The snapshot file could not be read, parsed or written. Fatal."""
    def __init__(self, message: str):
        super().__init__(message, error_code="SNAPSHOT_ERROR")
