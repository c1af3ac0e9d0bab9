from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from epub_builder import Chapter, write_epub


@pytest.fixture
def make_epub(tmp_path: Path) -> Callable[..., Path]:
    def _make(chapters: list[Chapter], *, name: str = "book.epub", **kwargs: object) -> Path:
        return write_epub(tmp_path / name, chapters, **kwargs)  # type: ignore[arg-type]

    return _make
