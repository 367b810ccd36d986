"""Errors raised by the project mutation services"""


class ProjectServiceError(Exception):
    """Base exception for project service errors"""
    pass


class ValidationError(ProjectServiceError):
    """Missing or malformed input, rejected before any store is touched"""
    pass


class PayloadTooLargeError(ValidationError):
    """Encoded image payload exceeds the configured ceiling"""
    pass


class NotFoundError(ProjectServiceError):
    """Operation targets a project that does not exist"""
    pass


class ConflictError(ProjectServiceError):
    """Project changed since it was loaded (version guard failed)"""
    pass


class UploadError(ProjectServiceError):
    """Blob store rejected or timed out on a put"""
    pass


class MetadataStoreError(ProjectServiceError):
    """Metadata store rejected a single-row operation"""
    pass


class MetadataBatchError(MetadataStoreError):
    """Metadata store rejected an atomic batch"""
    pass
