from __future__ import annotations

from pathlib import Path

import pytest

from epub_builder import Chapter, chapter_xhtml, words
from folio.container import EpubContainer
from folio.documents import DocumentCache
from folio.errors import ContentDocumentError
from folio.package import load_package
from folio.paginate import PaginationConfig, count_words, paginate_spine


def _walk(epub_path: Path, *, words_per_page: int, commit: bool = True, progress=None):
    container = EpubContainer.open(epub_path)
    package = load_package(container)
    cache = DocumentCache(container)
    config = PaginationConfig(words_per_page=words_per_page, commit=commit)
    result = paginate_spine(package, cache, config, progress=progress)
    return container, package, cache, result


def _markers(document) -> list[str]:
    return [span["id"] for span in document.soup.find_all("span", attrs={"role": "doc-pagebreak"})]


def test_count_words_splits_on_single_spaces() -> None:
    assert count_words("one two three") == 3
    assert count_words("one  two") == 3
    assert count_words("one\ntwo") == 1


def test_carry_forward_scenario(make_epub) -> None:
    epub_path = make_epub([Chapter("c1", "ch1.xhtml", [words(100), words(150), words(120)])])
    container, package, cache, result = _walk(epub_path, words_per_page=200)
    try:
        entry = package.manifest_item("c1")
        document = cache.get(entry.path)
        paragraphs = document.body().find_all("p")

        assert result.word_count == 370
        assert result.pages_assigned == 1
        assert result.state.running_total == 170
        assert entry.pages == [1]
        assert [a.page for a in result.assignments] == [1]
        assert result.assignments[0].owner is entry
        assert paragraphs[0].find("span") is None
        marker = paragraphs[1].contents[-1]
        assert marker.name == "span"
        assert marker["role"] == "doc-pagebreak"
        assert marker["id"] == "pg1"
        assert marker["aria-label"] == "1"
        assert paragraphs[2].find("span") is None
        assert document.dirty is True
    finally:
        container.close()


@pytest.mark.parametrize(
    ("paragraph_sizes", "words_per_page"),
    [
        ([100, 100, 100, 100], 200),
        ([130, 70, 199, 1, 55], 100),
        ([37, 41, 12, 90, 250, 3], 50),
        ([10, 10, 10], 200),
    ],
)
def test_marker_count_is_floor_of_total_words(make_epub, paragraph_sizes, words_per_page) -> None:
    half = len(paragraph_sizes) // 2
    epub_path = make_epub(
        [
            Chapter("c1", "ch1.xhtml", [words(n) for n in paragraph_sizes[:half]]),
            Chapter("c2", "ch2.xhtml", [words(n) for n in paragraph_sizes[half:]]),
        ]
    )
    container, package, cache, result = _walk(epub_path, words_per_page=words_per_page)
    try:
        total = sum(paragraph_sizes)
        expected = total // words_per_page
        inserted = sum(len(_markers(doc)) for doc in cache.documents())
        assert result.word_count == total
        assert inserted == expected
        assert result.pages_assigned == expected
        assert result.page_count == expected
    finally:
        container.close()


def test_pages_are_contiguous_in_spine_order(make_epub) -> None:
    epub_path = make_epub(
        [
            Chapter("c1", "ch1.xhtml", [words(120), words(120)]),
            Chapter("c2", "ch2.xhtml", [words(300)]),
            Chapter("c3", "ch3.xhtml", [words(90), words(90)]),
        ],
        spine=["c3", "c1", "c2"],
    )
    container, package, cache, result = _walk(epub_path, words_per_page=100)
    try:
        pages = [a.page for a in result.assignments]
        assert pages == list(range(1, len(pages) + 1))
        assert package.manifest_item("c3").pages == [1]
        assert package.manifest_item("c1").pages == [2, 3, 4]
        assert package.manifest_item("c2").pages == [5, 6, 7]
        ch2 = cache.get("OEBPS/ch2.xhtml")
        # One long paragraph carries every break it crosses, in order.
        assert _markers(ch2) == ["pg5", "pg6", "pg7"]
    finally:
        container.close()


def test_short_and_blank_paragraphs_are_ignored(make_epub) -> None:
    epub_path = make_epub([Chapter("c1", "ch1.xhtml", ["", "   ", "a", words(3)])])
    container, package, cache, result = _walk(epub_path, words_per_page=2)
    try:
        assert result.word_count == 3
        assert result.pages_assigned == 1
        paragraphs = cache.get("OEBPS/ch1.xhtml").body().find_all("p")
        assert [p.find("span") is not None for p in paragraphs] == [False, False, False, True]
    finally:
        container.close()


def test_unresolved_spine_entries_are_skipped(make_epub) -> None:
    epub_path = make_epub(
        [
            Chapter("c1", "ch1.xhtml", [words(150)]),
            Chapter("gone", "gone.xhtml", [words(999)], stored=False),
        ],
        spine=["ghost", "c1", "gone"],
    )
    events: list[dict[str, object]] = []
    container, package, cache, result = _walk(epub_path, words_per_page=100, progress=events.append)
    try:
        assert result.word_count == 150
        assert result.pages_assigned == 1
        assert result.skipped == ["ghost", "gone"]
        assert [e["event"] for e in events] == ["walk_start", "item_skipped", "item_done", "item_skipped"]
        assert events[1]["reason"] == "no manifest item"
        assert events[3]["reason"] == "missing from container"
    finally:
        container.close()


def test_document_without_body_is_fatal(make_epub) -> None:
    bodiless = '<?xml version="1.0"?><html xmlns="http://www.w3.org/1999/xhtml"><head/></html>'
    epub_path = make_epub(
        [
            Chapter("c1", "ch1.xhtml", [words(150)]),
            Chapter("c2", "ch2.xhtml", markup=bodiless),
        ]
    )
    container = EpubContainer.open(epub_path)
    try:
        package = load_package(container)
        with pytest.raises(ContentDocumentError, match="ch2.xhtml"):
            paginate_spine(package, DocumentCache(container), PaginationConfig(words_per_page=100, commit=True))
    finally:
        container.close()


def test_dry_run_counts_without_mutating(make_epub) -> None:
    chapters = [
        Chapter("c1", "ch1.xhtml", [words(100), words(150), words(120)]),
        Chapter("c2", "ch2.xhtml", [words(260)]),
    ]
    epub_path = make_epub(chapters)
    container, package, cache, dry = _walk(epub_path, words_per_page=200, commit=False)
    try:
        assert dry.word_count == 630
        assert dry.page_count == 3
        assert dry.assignments == ()
        assert all(not doc.dirty for doc in cache.documents())
        assert all(not _markers(doc) for doc in cache.documents())
        assert all(entry.pages == [] for entry in package.manifest)
    finally:
        container.close()

    container, _, _, committed = _walk(epub_path, words_per_page=200, commit=True)
    try:
        assert committed.word_count == dry.word_count
        assert committed.pages_assigned == dry.page_count
    finally:
        container.close()


def test_nested_inline_markup_counts_as_paragraph_text(make_epub) -> None:
    markup = chapter_xhtml([f"<em>{words(60)}</em> {words(60, 'x')}"])
    epub_path = make_epub([Chapter("c1", "ch1.xhtml", markup=markup)])
    container, _, cache, result = _walk(epub_path, words_per_page=100)
    try:
        assert result.word_count == 120
        paragraph = cache.get("OEBPS/ch1.xhtml").body().find("p")
        assert paragraph.contents[-1].name == "span"
        assert paragraph.find("em").get_text() == words(60)
    finally:
        container.close()


def test_words_per_page_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PaginationConfig(words_per_page=0)


def test_non_linear_spine_items_are_still_paginated(make_epub) -> None:
    epub_path = make_epub(
        [Chapter("c1", "ch1.xhtml", [words(150)]), Chapter("c2", "ch2.xhtml", [words(150)])],
        non_linear=("c2",),
    )
    container, package, cache, result = _walk(epub_path, words_per_page=100)
    try:
        assert package.spine[1].linear is False
        assert result.word_count == 300
        assert _markers(cache.get("OEBPS/ch2.xhtml")) == ["pg2", "pg3"]
    finally:
        container.close()
