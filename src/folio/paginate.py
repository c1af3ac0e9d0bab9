from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from bs4 import BeautifulSoup, Tag  # type: ignore

from .documents import DocumentCache
from .errors import ContentDocumentError
from .logging_utils import debug_log
from .package import ManifestEntry, PackageDocument

DEFAULT_WORDS_PER_PAGE = 250
PAGE_ID_PREFIX = "pg"
PAGEBREAK_ROLE = "doc-pagebreak"

ProgressCallback = Callable[[dict[str, object]], None]


@dataclass
class PaginationConfig:
    words_per_page: int = DEFAULT_WORDS_PER_PAGE
    commit: bool = False
    paragraph_tags: tuple[str, ...] = ("p",)
    # Paragraphs shorter than this (after trimming) are neither counted nor paginated.
    min_text_length: int = 2

    def __post_init__(self) -> None:
        if self.words_per_page <= 0:
            raise ValueError(f"words_per_page must be positive, got {self.words_per_page}")


@dataclass
class PaginationState:
    word_count: int = 0
    running_total: int = 0
    page: int = 1

    @property
    def last_page(self) -> int:
        return self.page - 1


@dataclass(frozen=True)
class PageAssignment:
    page: int
    owner: ManifestEntry

    @property
    def fragment_id(self) -> str:
        return page_id(self.page)


@dataclass
class DocumentReport:
    idref: str
    href: str
    words: int
    pages: list[int] = field(default_factory=list)


@dataclass
class WalkResult:
    config: PaginationConfig
    state: PaginationState
    assignments: tuple[PageAssignment, ...]
    documents: list[DocumentReport]
    skipped: list[str]

    @property
    def word_count(self) -> int:
        return self.state.word_count

    @property
    def page_count(self) -> int:
        return self.state.word_count // self.config.words_per_page

    @property
    def pages_assigned(self) -> int:
        return len(self.assignments)


def page_id(page: int) -> str:
    return f"{PAGE_ID_PREFIX}{page}"


def count_words(text: str) -> int:
    return len(text.split(" "))


def make_page_marker(soup: BeautifulSoup, page: int) -> Tag:
    marker = soup.new_tag("span")
    marker["role"] = PAGEBREAK_ROLE
    marker["id"] = page_id(page)
    marker["aria-label"] = str(page)
    return marker


def _emit(progress: ProgressCallback | None, event: dict[str, object]) -> None:
    if progress is not None:
        progress(event)


def paginate_spine(
    package: PackageDocument,
    cache: DocumentCache,
    config: PaginationConfig,
    *,
    progress: ProgressCallback | None = None,
) -> WalkResult:
    """Walk the spine in reading order, counting words and placing page breaks.

    ``running_total`` carries the overflow past each break forward instead of
    resetting to zero, so a page boundary is emitted every ``words_per_page``
    words of counted text. Breaks are appended as the last child of the
    paragraph that crossed the boundary. A break fires once the total reaches
    ``words_per_page`` (not only when it exceeds it) and repeats within one
    paragraph, so a run always places ``word_count // words_per_page`` markers.
    Nothing is mutated unless ``config.commit`` is set.
    """
    state = PaginationState()
    assignments: list[PageAssignment] = []
    reports: list[DocumentReport] = []
    skipped: list[str] = []
    total = len(package.spine)
    _emit(progress, {"event": "walk_start", "total": total})

    for index, spine_entry in enumerate(package.spine, start=1):
        entry = package.manifest_item(spine_entry.idref)
        if entry is None:
            debug_log(f"Spine idref {spine_entry.idref!r} has no manifest item; skipping.")
            skipped.append(spine_entry.idref)
            _emit(
                progress,
                {
                    "event": "item_skipped",
                    "index": index,
                    "total": total,
                    "source": spine_entry.idref,
                    "reason": "no manifest item",
                },
            )
            continue

        document = cache.get(entry.path)
        if document is None:
            debug_log(f"{entry.path} is listed in the manifest but missing from the container; skipping.")
            skipped.append(spine_entry.idref)
            _emit(
                progress,
                {
                    "event": "item_skipped",
                    "index": index,
                    "total": total,
                    "source": entry.href,
                    "reason": "missing from container",
                },
            )
            continue

        body = document.body()
        if body is None:
            raise ContentDocumentError(f"{entry.path} has no <body> element")

        report = DocumentReport(idref=entry.id, href=entry.href, words=0)
        for node in body.find_all(list(config.paragraph_tags)):
            text = node.get_text().strip()
            if len(text) < config.min_text_length:
                continue
            words = count_words(text)
            state.word_count += words
            state.running_total += words
            report.words += words
            if not config.commit:
                continue
            while state.running_total >= config.words_per_page:
                state.running_total -= config.words_per_page
                node.append(make_page_marker(document.soup, state.page))
                entry.add_page(state.page)
                report.pages.append(state.page)
                assignments.append(PageAssignment(page=state.page, owner=entry))
                state.page += 1

        if report.pages:
            document.mark_dirty()
        reports.append(report)
        _emit(
            progress,
            {
                "event": "item_done",
                "index": index,
                "total": total,
                "source": entry.href,
                "words": report.words,
                "pages": list(report.pages),
            },
        )

    return WalkResult(
        config=config,
        state=state,
        assignments=tuple(assignments),
        documents=reports,
        skipped=skipped,
    )


__all__ = [
    "DEFAULT_WORDS_PER_PAGE",
    "DocumentReport",
    "PageAssignment",
    "PaginationConfig",
    "PaginationState",
    "WalkResult",
    "count_words",
    "make_page_marker",
    "page_id",
    "paginate_spine",
]
