from __future__ import annotations

import re
import warnings
from dataclasses import dataclass
from html.entities import name2codepoint

from bs4 import BeautifulSoup, FeatureNotFound, Tag, XMLParsedAsHTMLWarning  # type: ignore

from .container import EpubContainer, normalize_entry_key

_XML_ENTITIES = frozenset({"amp", "lt", "gt", "quot", "apos"})
_NAMED_ENTITY_RE = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")


def _looks_like_xml(markup: str) -> bool:
    stripped = markup.lstrip("\ufeff \t\r\n")
    lower_head = stripped[:400].lower()
    return stripped.startswith("<?xml") or (
        ("<html" in lower_head or "<ncx" in lower_head) and "xmlns" in lower_head
    )


def _numeric_entities(markup: str) -> str:
    """Rewrite HTML named entities as character references the XML parser knows."""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in _XML_ENTITIES or name not in name2codepoint:
            return match.group(0)
        return f"&#{name2codepoint[name]};"

    return _NAMED_ENTITY_RE.sub(_replace, markup)


def parse_markup(markup: str, *, xml: bool | None = None) -> BeautifulSoup:
    """Parse *markup* into a mutable soup.

    XHTML and NCX go through the XML builder so they serialise back as XML;
    anything else falls through the HTML builders that are installed.
    """
    if xml is None:
        xml = _looks_like_xml(markup)

    if xml:
        # Without the DTD the recovering XML parser drops HTML named entities.
        xml_markup = _numeric_entities(markup)
        for parser in ("lxml-xml", "xml"):
            try:
                return BeautifulSoup(xml_markup, parser)
            except FeatureNotFound:
                continue

    for parser in ("html5lib", "lxml", "html.parser"):
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
                return BeautifulSoup(markup, parser)
        except FeatureNotFound:
            continue

    return BeautifulSoup(markup, "html.parser")


def serialize_markup(soup: BeautifulSoup) -> bytes:
    return str(soup).encode("utf-8")


@dataclass
class Document:
    filename: str
    soup: BeautifulSoup
    entry: str
    is_xml: bool
    dirty: bool = False

    @property
    def key(self) -> str:
        return normalize_entry_key(self.filename)

    def body(self) -> Tag | None:
        body = self.soup.find("body")
        return body if isinstance(body, Tag) else None

    def mark_dirty(self) -> None:
        self.dirty = True

    def serialize(self) -> bytes:
        return serialize_markup(self.soup)


class DocumentCache:
    """Parses each container entry at most once per run.

    Lookups are keyed on the case-folded container path, so ``Text/Ch1.xhtml``
    and ``text/ch1.XHTML`` resolve to the same ``Document`` instance.
    """

    def __init__(self, container: EpubContainer) -> None:
        self.container = container
        self._documents: dict[str, Document] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, path: str) -> bool:
        return normalize_entry_key(path) in self._documents

    def get(self, path: str, *, xml: bool | None = None) -> Document | None:
        key = normalize_entry_key(path)
        cached = self._documents.get(key)
        if cached is not None:
            return cached
        entry = self.container.find(path)
        if entry is None:
            return None
        text = self.container.read_text(entry)
        if xml is None:
            xml = _looks_like_xml(text)
        soup = parse_markup(text, xml=xml)
        document = Document(filename=path, soup=soup, entry=entry, is_xml=xml)
        self._documents[key] = document
        return document

    def documents(self) -> list[Document]:
        return list(self._documents.values())

    def dirty_documents(self) -> list[Document]:
        return [doc for doc in self._documents.values() if doc.dirty]

    def replacements(self) -> dict[str, bytes]:
        return {doc.entry: doc.serialize() for doc in self.dirty_documents()}


__all__ = [
    "Document",
    "DocumentCache",
    "parse_markup",
    "serialize_markup",
]
