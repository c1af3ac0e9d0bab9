from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .container import EpubContainer, write_container
from .documents import DocumentCache
from .logging_utils import debug_log
from .navigation import rewrite_navigation
from .package import PackageDocument, load_package
from .paginate import (
    DEFAULT_WORDS_PER_PAGE,
    DocumentReport,
    PaginationConfig,
    ProgressCallback,
    paginate_spine,
)

PAGINATED_SUFFIX = ".paginated.epub"


@dataclass
class PaginationResult:
    source: Path
    output: Path | None
    words_per_page: int
    word_count: int
    page_count: int
    pages_assigned: int
    package: PackageDocument
    documents: list[DocumentReport] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    replaced_entries: list[str] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.output is not None


def paginated_output_path(path: Path) -> Path:
    return path.with_name(path.stem + PAGINATED_SUFFIX)


def paginate_epub(
    path: str | os.PathLike[str],
    *,
    words_per_page: int = DEFAULT_WORDS_PER_PAGE,
    commit: bool = False,
    output: str | os.PathLike[str] | None = None,
    progress: ProgressCallback | None = None,
) -> PaginationResult:
    """Paginate the EPUB at *path*.

    Without ``commit`` the run is read-only and only the word/page totals are
    computed. With ``commit`` a new archive is written next to the input (or to
    *output*) once every step has succeeded; the input is never modified.
    """
    source = Path(path)
    config = PaginationConfig(words_per_page=words_per_page, commit=commit)
    destination: Path | None = None
    if commit:
        destination = Path(output) if output is not None else paginated_output_path(source)
        if destination.resolve() == source.resolve():
            raise ValueError("Output path must differ from the input EPUB.")

    with EpubContainer.open(source) as container:
        package = load_package(container)
        cache = DocumentCache(container)
        walk = paginate_spine(package, cache, config, progress=progress)
        rewrite_navigation(package, cache, walk)
        replacements = cache.replacements() if commit else {}

    if destination is not None:
        debug_log(f"Writing {len(replacements)} replaced entries to {destination}")
        write_container(source, destination, replacements)

    return PaginationResult(
        source=source,
        output=destination,
        words_per_page=words_per_page,
        word_count=walk.word_count,
        page_count=walk.page_count,
        pages_assigned=walk.pages_assigned,
        package=package,
        documents=walk.documents,
        skipped=walk.skipped,
        replaced_entries=sorted(replacements),
    )


__all__ = [
    "PAGINATED_SUFFIX",
    "PaginationResult",
    "paginate_epub",
    "paginated_output_path",
]
