from .core import PaginationResult, paginate_epub, paginated_output_path
from .errors import (
    ContentDocumentError,
    EpubStructureError,
    FolioError,
    MalformedPackageError,
    MissingPackageDocumentError,
    MissingRootfileError,
    NotAnEpubError,
    PageAssignmentError,
)
from .paginate import DEFAULT_WORDS_PER_PAGE, PageAssignment, PaginationConfig

__all__ = [
    "DEFAULT_WORDS_PER_PAGE",
    "PageAssignment",
    "PaginationConfig",
    "PaginationResult",
    "paginate_epub",
    "paginated_output_path",
    "FolioError",
    "EpubStructureError",
    "NotAnEpubError",
    "MissingRootfileError",
    "MissingPackageDocumentError",
    "MalformedPackageError",
    "ContentDocumentError",
    "PageAssignmentError",
]
