from __future__ import annotations

import argparse
import os
import sys
from importlib import metadata
from pathlib import Path

import tomllib
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)

from .core import PaginationResult, paginate_epub
from .errors import FolioError
from .logging_utils import set_debug_logging
from .paginate import DEFAULT_WORDS_PER_PAGE

WORDS_PER_PAGE_ENV = "FOLIO_WORDS_PER_PAGE"


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("folio")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return parsed


def default_words_per_page() -> int:
    env_value = os.environ.get(WORDS_PER_PAGE_ENV)
    if env_value:
        try:
            parsed = int(env_value)
        except ValueError:
            return DEFAULT_WORDS_PER_PAGE
        if parsed > 0:
            return parsed
    return DEFAULT_WORDS_PER_PAGE


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="folio",
        description=(
            "Insert synthetic page breaks into an EPUB every N words and rebuild its "
            "page lists. Without --commit only the word and page totals are reported."
        ),
    )
    ap.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"folio {__version__}",
    )
    ap.add_argument(
        "input_path",
        nargs="?",
        help="Path to the input .epub",
    )
    ap.add_argument(
        "-f",
        "--filename",
        dest="filename",
        help="Path to the input .epub (alternative to the positional argument)",
    )
    ap.add_argument(
        "-w",
        "--words-per-page",
        type=_positive_int,
        default=None,
        help=(
            f"Words per page (default: ${WORDS_PER_PAGE_ENV} or {DEFAULT_WORDS_PER_PAGE})."
        ),
    )
    ap.add_argument(
        "--commit",
        action="store_true",
        help="Write <name>.paginated.epub next to the input. Without it, only display page information.",
    )
    ap.add_argument(
        "-o",
        "--output",
        help="Write the paginated EPUB here instead of <name>.paginated.epub (requires --commit).",
    )
    ap.add_argument(
        "--verbose",
        action="store_true",
        help="List per-document word and page counts.",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (skipped spine items, navigation lookups).",
    )
    return ap


class _RichProgress:
    def __init__(self) -> None:
        self.console = Console(stderr=True)
        self.enabled = self.console.is_terminal
        self.progress: Progress | None = None
        self.task_id = None

    def handle(self, event: dict[str, object]) -> None:
        if not self.enabled:
            return
        event_type = event.get("event")
        if event_type == "walk_start":
            total = event.get("total")
            self.progress = Progress(
                TextColumn("{task.description}", justify="left"),
                BarColumn(bar_width=None),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                TextColumn("{task.fields[detail]}", justify="left"),
                console=self.console,
                transient=True,
            )
            self.progress.start()
            self.task_id = self.progress.add_task(
                "Spine", total=total if isinstance(total, int) else None, detail=""
            )
            return
        if self.progress is None or self.task_id is None:
            return
        source = str(event.get("source") or "")
        if event_type == "item_done":
            detail = f"{Path(source).name} ({event.get('words', 0)} words)"
        elif event_type == "item_skipped":
            detail = f"{source} skipped ({event.get('reason')})"
        else:
            return
        self.progress.update(self.task_id, advance=1, detail=detail)

    def close(self) -> None:
        if self.progress is not None:
            self.progress.stop()
            self.progress = None


def _print_report(result: PaginationResult, *, verbose: bool) -> None:
    if verbose:
        for doc in result.documents:
            pages = ""
            if doc.pages:
                pages = f", pages {doc.pages[0]}-{doc.pages[-1]}" if len(doc.pages) > 1 else f", page {doc.pages[0]}"
            print(f"  {doc.href}: {doc.words} words{pages}")
        for idref in result.skipped:
            print(f"  {idref}: skipped")
        for entry in result.replaced_entries:
            print(f"  replaced {entry}")
    print(f"Words: {result.word_count}")
    print(f"Pages: {result.page_count}")


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    set_debug_logging(bool(args.debug))

    raw_input = args.filename or args.input_path
    if not raw_input:
        parser.error("an input .epub is required")
    if args.output and not args.commit:
        parser.error("--output can only be used with --commit")

    input_path = Path(raw_input)
    if not input_path.is_file():
        print("File not found.")
        return 1

    words_per_page = args.words_per_page or default_words_per_page()
    progress = _RichProgress()
    try:
        result = paginate_epub(
            input_path,
            words_per_page=words_per_page,
            commit=args.commit,
            output=args.output,
            progress=progress.handle,
        )
    except FolioError as exc:
        print(str(exc))
        return exc.exit_code
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        progress.close()

    if result.output is not None:
        print(f"Working file: {result.output}")
    _print_report(result, verbose=bool(args.verbose))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
