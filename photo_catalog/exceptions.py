"""
Custom exception hierarchy for the photo catalog.

I/O problems on individual files are caught close to where they happen and
degrade the run; only precondition failures reach the caller.
"""


class PhotoCatalogError(Exception):
    """Base exception for all photo catalog errors."""
    pass


class FileHashError(PhotoCatalogError):
    """Raised when a file cannot be read for hashing."""
    pass


class DatabaseError(PhotoCatalogError):
    """Raised when catalog database operations fail."""
    pass


class ProjectError(PhotoCatalogError):
    """Raised when a project directory is invalid or its metadata unreadable."""
    pass


class NoProjectOpenError(ProjectError):
    """Raised when an operation needs an open project and none is open."""
    pass


class InsufficientFoldersError(PhotoCatalogError):
    """Raised when duplicate analysis has fewer than two folders to compare."""
    pass


class CacheFormatError(PhotoCatalogError):
    """Raised when the folder analysis cache blob cannot be decoded."""
    pass


class AnalysisCancelled(Exception):
    """
    Raised when a duplicate analysis run observes a cancellation request.
    Not a PhotoCatalogError: cancelling is a user decision, not a failure.
    """
    pass
