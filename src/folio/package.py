from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from urllib.parse import unquote

from .container import EpubContainer
from .errors import (
    MalformedPackageError,
    MissingPackageDocumentError,
    MissingRootfileError,
    NotAnEpubError,
)

CONTAINER_PATH = "META-INF/container.xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"


@dataclass
class ManifestEntry:
    id: str
    href: str
    media_type: str
    path: str
    properties: str | None = None
    pages: list[int] = field(default_factory=list)

    def add_page(self, page: int) -> None:
        if self.pages and page <= self.pages[-1]:
            raise ValueError(f"Page {page} added out of order to {self.href}")
        self.pages.append(page)

    def has_property(self, name: str) -> bool:
        return name in (self.properties or "").split()


@dataclass
class SpineEntry:
    """One ``itemref``. ``linear`` is informational: non-linear items are still paginated."""

    idref: str
    linear: bool = True


@dataclass
class GuideEntry:
    type: str
    href: str
    title: str | None = None


@dataclass
class PackageDocument:
    opf_path: str
    manifest: list[ManifestEntry]
    spine: list[SpineEntry]
    guide: list[GuideEntry]
    toc_id: str | None = None

    def __post_init__(self) -> None:
        self._by_id = {entry.id: entry for entry in self.manifest}

    def manifest_item(self, item_id: str) -> ManifestEntry | None:
        return self._by_id.get(item_id)

    def resolve_href(self, href: str) -> str:
        return resolve_relative_path(self.opf_path, href)

    def ncx_item(self) -> ManifestEntry | None:
        if self.toc_id:
            entry = self.manifest_item(self.toc_id)
            if entry is not None:
                return entry
        for entry in self.manifest:
            if entry.media_type.lower() == NCX_MEDIA_TYPE:
                return entry
        return None

    def nav_item(self) -> ManifestEntry | None:
        for entry in self.manifest:
            if entry.has_property("nav"):
                return entry
        return None


def _strip_tag(tag: str) -> str:
    return tag.split("}", 1)[-1] if "}" in tag else tag


def resolve_relative_path(base_file: str, href: str) -> str:
    href = unquote(href.split("#", 1)[0])
    base = str(PurePosixPath(base_file).parent)
    if base not in ("", ".", "/"):
        combined = PurePosixPath(base) / href
    else:
        combined = PurePosixPath(href)
    parts: list[str] = []
    for part in combined.parts:
        if part == "..":
            if parts:
                parts.pop()
            continue
        if part == ".":
            continue
        parts.append(part)
    return "/".join(parts)


def _parse_xml(text: str, name: str) -> ET.Element:
    try:
        return ET.fromstring(text.strip().strip("\0"))
    except ET.ParseError as exc:
        raise MalformedPackageError(f"{name} is not well-formed XML: {exc}") from exc


def find_opf_path(container: EpubContainer) -> str:
    """Follow META-INF/container.xml to the package document's entry name."""
    container_entry = container.find(CONTAINER_PATH)
    if container_entry is None:
        raise NotAnEpubError("Does not appear to be an epub file.")
    try:
        root = _parse_xml(container.read_text(container_entry), CONTAINER_PATH)
    except MalformedPackageError as exc:
        raise NotAnEpubError(str(exc)) from exc
    full_path = None
    for elem in root.iter():
        if _strip_tag(elem.tag) == "rootfile":
            full_path = elem.attrib.get("full-path")
            break
    if not full_path:
        raise MissingRootfileError("No root file specified in container.xml")
    opf_entry = container.find(full_path)
    if opf_entry is None:
        raise MissingPackageDocumentError(f"Could not find the OPF file: {full_path}")
    return opf_entry


def _required(elem: ET.Element, name: str, where: str) -> str:
    value = elem.attrib.get(name)
    if value is None:
        raise MalformedPackageError(f"{where} is missing required attribute '{name}'")
    return value


def parse_package(opf_text: str, opf_path: str) -> PackageDocument:
    root = _parse_xml(opf_text, opf_path)
    if root.tag.startswith("{"):
        ns = {"opf": root.tag.split("}")[0].strip("{")}
        prefix = "opf:"
    else:
        # Non-namespaced OPF 2 packages still show up in the wild.
        ns = {}
        prefix = ""

    manifest: list[ManifestEntry] = []
    seen_ids: set[str] = set()
    for item in root.findall(f"{prefix}manifest/{prefix}item", ns):
        href = _required(item, "href", "manifest item")
        item_id = _required(item, "id", f"manifest item {href!r}")
        media_type = _required(item, "media-type", f"manifest item {item_id!r}")
        if item_id in seen_ids:
            raise MalformedPackageError(f"Duplicate manifest id {item_id!r}")
        seen_ids.add(item_id)
        manifest.append(
            ManifestEntry(
                id=item_id,
                href=href,
                media_type=media_type,
                path=resolve_relative_path(opf_path, href),
                properties=item.attrib.get("properties"),
            )
        )

    spine: list[SpineEntry] = []
    toc_id = None
    spine_elem = root.find(f"{prefix}spine", ns)
    if spine_elem is not None:
        toc_id = spine_elem.attrib.get("toc")
        for itemref in spine_elem.findall(f"{prefix}itemref", ns):
            spine.append(
                SpineEntry(
                    idref=_required(itemref, "idref", "spine itemref"),
                    linear=itemref.attrib.get("linear", "yes").lower() != "no",
                )
            )

    guide: list[GuideEntry] = []
    for reference in root.findall(f"{prefix}guide/{prefix}reference", ns):
        guide.append(
            GuideEntry(
                type=_required(reference, "type", "guide reference"),
                href=_required(reference, "href", "guide reference"),
                title=reference.attrib.get("title"),
            )
        )

    return PackageDocument(
        opf_path=opf_path,
        manifest=manifest,
        spine=spine,
        guide=guide,
        toc_id=toc_id,
    )


def load_package(container: EpubContainer) -> PackageDocument:
    opf_path = find_opf_path(container)
    return parse_package(container.read_text(opf_path), opf_path)


__all__ = [
    "GuideEntry",
    "ManifestEntry",
    "PackageDocument",
    "SpineEntry",
    "find_opf_path",
    "load_package",
    "parse_package",
    "resolve_relative_path",
]
