from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

import folio.cli as cli
from epub_builder import Chapter, words


def _book(make_epub) -> Path:
    return make_epub([Chapter("c1", "ch1.xhtml", [words(100), words(150), words(120)])])


def test_report_without_commit(make_epub, capsys) -> None:
    epub_path = _book(make_epub)

    exit_code = cli.main([str(epub_path), "-w", "200"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "Words: 370" in out
    assert "Pages: 1" in out
    assert "Working file" not in out
    assert not epub_path.with_name("book.paginated.epub").exists()


def test_commit_writes_paginated_copy(make_epub, capsys) -> None:
    epub_path = _book(make_epub)

    exit_code = cli.main(["--filename", str(epub_path), "--words-per-page", "200", "--commit", "--verbose"])

    assert exit_code == 0
    output = epub_path.with_name("book.paginated.epub")
    assert output.exists()
    out = capsys.readouterr().out
    assert f"Working file: {output}" in out
    assert "ch1.xhtml: 370 words, page 1" in out
    assert "replaced OEBPS/ch1.xhtml" in out


def test_missing_input_returns_1(tmp_path: Path, capsys) -> None:
    assert cli.main([str(tmp_path / "nope.epub")]) == 1
    assert "File not found." in capsys.readouterr().out


@pytest.mark.parametrize(
    ("entries", "expected"),
    [
        ({"mimetype": "application/epub+zip"}, 2),
        ({"META-INF/container.xml": "<container><rootfiles/></container>"}, 3),
        (
            {
                "META-INF/container.xml": (
                    '<container><rootfiles><rootfile full-path="OEBPS/content.opf"/></rootfiles></container>'
                )
            },
            4,
        ),
        (
            {
                "META-INF/container.xml": (
                    '<container><rootfiles><rootfile full-path="content.opf"/></rootfiles></container>'
                ),
                "content.opf": "<package><manifest><item id='a' href='a.xhtml'/></manifest></package>",
            },
            5,
        ),
    ],
)
def test_structural_errors_map_to_exit_codes(tmp_path: Path, entries, expected, capsys) -> None:
    epub_path = tmp_path / "broken.epub"
    with zipfile.ZipFile(epub_path, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)

    assert cli.main([str(epub_path), "--commit"]) == expected
    assert capsys.readouterr().out.strip()
    assert not (tmp_path / "broken.paginated.epub").exists()


def test_words_per_page_env_default(make_epub, monkeypatch, capsys) -> None:
    epub_path = _book(make_epub)
    monkeypatch.setenv(cli.WORDS_PER_PAGE_ENV, "100")
    assert cli.main([str(epub_path)]) == 0
    assert "Pages: 3" in capsys.readouterr().out


def test_invalid_env_default_falls_back(monkeypatch) -> None:
    monkeypatch.setenv(cli.WORDS_PER_PAGE_ENV, "lots")
    assert cli.default_words_per_page() == 250
    monkeypatch.setenv(cli.WORDS_PER_PAGE_ENV, "-5")
    assert cli.default_words_per_page() == 250


def test_rejects_non_positive_words_per_page(make_epub) -> None:
    epub_path = _book(make_epub)
    with pytest.raises(SystemExit) as excinfo:
        cli.main([str(epub_path), "-w", "0"])
    assert excinfo.value.code == 2


def test_output_requires_commit(make_epub, tmp_path: Path) -> None:
    epub_path = _book(make_epub)
    with pytest.raises(SystemExit):
        cli.main([str(epub_path), "-o", str(tmp_path / "out.epub")])


def test_debug_reports_skipped_spine_items(make_epub, capsys) -> None:
    epub_path = make_epub([Chapter("c1", "ch1.xhtml", [words(10)])], spine=["ghost", "c1"])
    try:
        assert cli.main([str(epub_path), "--debug"]) == 0
    finally:
        cli.set_debug_logging(False)
    err = capsys.readouterr().err
    assert "[folio debug] Spine idref 'ghost'" in err
