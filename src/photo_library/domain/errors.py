"""Exceptions raised by the ingestion pipeline."""


class IngestError(Exception):
    """Base class for failures that reject a single uploaded file."""


class MissingFilename(IngestError):
    """The file part carried no filename."""


class InvalidName(IngestError):
    """The filename is unsafe even after sanitizing."""


class UnsupportedExtension(IngestError):
    """The file extension is not an accepted image type."""


class EmptyFile(IngestError):
    """The file part carried no bytes."""


class FileTooLarge(IngestError):
    """The file part exceeds the configured upload ceiling."""


class UnrecognizedFormat(IngestError):
    """The file content does not match a supported image codec."""


class SlugTooLong(IngestError):
    """The resolved slug exceeds the stored column width."""


class TitleTooLong(IngestError):
    """The resolved title exceeds the stored column width."""


class StorageUnavailable(IngestError):
    """Directories or files could not be created on disk."""


class NotMultipart(Exception):
    """The request body is not multipart form data."""


class PhotoConflictError(Exception):
    """A photo with the same unique slug already exists."""


class PhotoVersionConflict(Exception):
    """The stored photo changed since it was read."""


class AnalysisError(Exception):
    """The analysis collaborator returned an unusable reply."""
