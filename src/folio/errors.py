from __future__ import annotations


class FolioError(RuntimeError):
    """Base class for errors that abort a pagination run."""

    exit_code = 1


class EpubStructureError(FolioError):
    """Raised when the package itself is malformed."""


class NotAnEpubError(EpubStructureError):
    exit_code = 2


class MissingRootfileError(EpubStructureError):
    exit_code = 3


class MissingPackageDocumentError(EpubStructureError):
    exit_code = 4


class MalformedPackageError(EpubStructureError):
    """Raised when a manifest, spine or guide entry lacks a required attribute."""

    exit_code = 5


class ContentDocumentError(FolioError):
    """Raised when a spine document cannot be paginated (e.g. it has no <body>)."""

    exit_code = 6


class PageAssignmentError(AssertionError):
    """Raised when the page assignment map is internally inconsistent."""


__all__ = [
    "ContentDocumentError",
    "EpubStructureError",
    "FolioError",
    "MalformedPackageError",
    "MissingPackageDocumentError",
    "MissingRootfileError",
    "NotAnEpubError",
    "PageAssignmentError",
]
