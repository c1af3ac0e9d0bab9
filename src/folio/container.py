from __future__ import annotations

import os
import shutil
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Mapping

from bs4 import UnicodeDammit  # type: ignore

from .errors import NotAnEpubError
from .logging_utils import debug_log


def normalize_entry_key(name: str) -> str:
    """Return the lookup key for a container path (case-insensitive, posix)."""
    return PurePosixPath(name.replace("\\", "/")).as_posix().lstrip("/").casefold()


class EpubContainer:
    """Read-side view of an EPUB ZIP with case-insensitive entry lookup."""

    def __init__(self, zf: zipfile.ZipFile) -> None:
        self._zf = zf
        self._names = set(zf.namelist())
        self._index: dict[str, str] = {}
        for name in zf.namelist():
            self._index.setdefault(normalize_entry_key(name), name)

    @classmethod
    def open(cls, path: str | os.PathLike[str]) -> "EpubContainer":
        try:
            zf = zipfile.ZipFile(path, "r")
        except zipfile.BadZipFile as exc:
            raise NotAnEpubError(f"Not a ZIP archive: {path}") from exc
        return cls(zf)

    def __enter__(self) -> "EpubContainer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._zf.close()

    @property
    def filename(self) -> str | None:
        return self._zf.filename

    def list_entries(self) -> list[str]:
        return [info.filename for info in self._zf.infolist() if not info.is_dir()]

    def find(self, path: str) -> str | None:
        if path in self._names:
            return path
        return self._index.get(normalize_entry_key(path))

    def find_by_suffix(self, suffix: str) -> str | None:
        wanted = suffix.casefold()
        for name in self.list_entries():
            if name.casefold().endswith(wanted):
                return name
        return None

    def read_bytes(self, name: str) -> bytes:
        with self._zf.open(name, "r") as handle:
            return handle.read()

    def read_text(self, name: str) -> str:
        """Decode an entry: byte-order mark, then UTF-8, then the declared encoding."""
        raw = self.read_bytes(name)
        dammit = UnicodeDammit(raw, user_encodings=["utf-8"])
        if dammit.unicode_markup is None:
            debug_log(f"Could not determine the encoding of {name}; decoding as UTF-8 with replacement.")
            return raw.decode("utf-8", errors="replace")
        encoding = (dammit.original_encoding or "utf-8").lower()
        if encoding not in ("utf-8", "utf8", "ascii"):
            debug_log(f"Decoded {name} as {encoding}.")
        return dammit.unicode_markup


def _copy_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    clone = zipfile.ZipInfo(filename=info.filename, date_time=info.date_time)
    clone.compress_type = info.compress_type
    clone.external_attr = info.external_attr
    clone.create_system = info.create_system
    return clone


def write_container(
    source: str | os.PathLike[str],
    destination: str | os.PathLike[str],
    replacements: Mapping[str, bytes],
) -> Path:
    """Copy *source* to *destination*, swapping in the bytes from *replacements*.

    Entries keep their original order, timestamps and compression so repeated
    runs over the same input produce identical archives. The destination only
    appears once the archive is fully written.
    """
    dest_path = Path(destination)
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    pending = dict(replacements)
    with tempfile.NamedTemporaryFile(
        prefix=f".{dest_path.name}.", suffix=".tmp", dir=dest_path.parent, delete=False
    ) as tmp:
        tmp_path = Path(tmp.name)
    try:
        with zipfile.ZipFile(source, "r") as zin, zipfile.ZipFile(tmp_path, "w") as zout:
            for info in zin.infolist():
                data = pending.pop(info.filename, None)
                if data is None:
                    data = zin.read(info)
                zout.writestr(_copy_info(info), data)
        if pending:
            missing = ", ".join(sorted(pending))
            raise KeyError(f"Cannot replace entries absent from the container: {missing}")
        shutil.copymode(source, tmp_path)
        os.replace(tmp_path, dest_path)
    finally:
        tmp_path.unlink(missing_ok=True)
    return dest_path


__all__ = [
    "EpubContainer",
    "normalize_entry_key",
    "write_container",
]
