from __future__ import annotations

import posixpath
from pathlib import PurePosixPath
from typing import Sequence

from bs4 import BeautifulSoup, Tag  # type: ignore

from .container import EpubContainer
from .documents import DocumentCache
from .errors import ContentDocumentError, MalformedPackageError, PageAssignmentError
from .logging_utils import debug_log
from .package import PackageDocument
from .paginate import PageAssignment, WalkResult, page_id

NAV_FALLBACK_NAME = "nav.xhtml"
EPUB_OPS_NS = "http://www.idpf.org/2007/ops"
PAGE_LIST_LABEL = "Pages"
TOTAL_PAGE_COUNT_META = "dtb:totalPageCount"
MAX_PAGE_NUMBER_META = "dtb:maxPageNumber"


def _owner_full_href(opf_path: str, href: str) -> str:
    base = posixpath.dirname(opf_path)
    return posixpath.normpath(posixpath.join(base, href.split("#", 1)[0]))


def page_targets(
    assignments: Sequence[PageAssignment],
    *,
    opf_path: str,
    document_path: str,
) -> list[tuple[int, str]]:
    """Return ``(page, href)`` pairs for a navigation document at *document_path*.

    Pages must run 1..n without gaps or repeats; anything else means the walker
    and the assignment map disagree, which is a bug rather than bad input.
    """
    start = posixpath.dirname(document_path) or "."
    targets: list[tuple[int, str]] = []
    for expected, assignment in enumerate(sorted(assignments, key=lambda a: a.page), start=1):
        if assignment.page != expected:
            raise PageAssignmentError(
                f"Page assignment map is not contiguous: expected page {expected}, found {assignment.page}"
            )
        owner = assignment.owner
        if owner is None or assignment.page not in owner.pages:
            raise PageAssignmentError(f"Page {assignment.page} has no owning manifest entry")
        target = _owner_full_href(opf_path, owner.href)
        relative = posixpath.relpath(target, start)
        targets.append((assignment.page, f"{relative}#{page_id(assignment.page)}"))
    return targets


def _text_tag(soup: BeautifulSoup, name: str, text: str) -> Tag:
    tag = soup.new_tag(name)
    tag.string = text
    return tag


def _nav_label(soup: BeautifulSoup, text: str) -> Tag:
    label = soup.new_tag("navLabel")
    label.append(_text_tag(soup, "text", text))
    return label


def _upsert_meta(soup: BeautifulSoup, head: Tag, name: str, content: str) -> None:
    matches = [meta for meta in head.find_all("meta", recursive=False) if meta.get("name") == name]
    if not matches:
        head.append(soup.new_tag("meta", attrs={"name": name, "content": content}))
        return
    matches[0]["content"] = content
    for extra in matches[1:]:
        extra.decompose()


def rewrite_ncx_page_list(
    soup: BeautifulSoup,
    assignments: Sequence[PageAssignment],
    *,
    opf_path: str,
    ncx_path: str,
) -> bool:
    """Replace the NCX ``pageList`` with one ``pageTarget`` per assigned page."""
    targets = page_targets(assignments, opf_path=opf_path, document_path=ncx_path)
    if not targets:
        return False
    root = soup.find("ncx")
    if not isinstance(root, Tag):
        raise MalformedPackageError(f"{ncx_path} has no <ncx> root element")

    head = root.find("head", recursive=False)
    if not isinstance(head, Tag):
        head = soup.new_tag("head")
        root.insert(0, head)
    last_page = str(targets[-1][0])
    _upsert_meta(soup, head, TOTAL_PAGE_COUNT_META, last_page)
    _upsert_meta(soup, head, MAX_PAGE_NUMBER_META, last_page)

    for existing in root.find_all("pageList"):
        existing.decompose()

    page_list = soup.new_tag("pageList")
    page_list.append(_nav_label(soup, PAGE_LIST_LABEL))
    for page, href in targets:
        target = soup.new_tag(
            "pageTarget",
            attrs={
                "type": "normal",
                "id": page_id(page),
                "value": str(page),
                "playOrder": str(page),
            },
        )
        target.append(_nav_label(soup, str(page)))
        target.append(soup.new_tag("content", attrs={"src": href}))
        page_list.append(target)

    # pageList belongs between navMap and any navList.
    nav_map = root.find("navMap", recursive=False)
    if isinstance(nav_map, Tag):
        nav_map.insert_after(page_list)
    else:
        root.append(page_list)
    return True


def _is_page_list_nav(nav: Tag) -> bool:
    return "page-list" in (nav.get("epub:type") or "").split()


def rewrite_nav_page_list(
    soup: BeautifulSoup,
    assignments: Sequence[PageAssignment],
    *,
    opf_path: str,
    nav_path: str,
) -> bool:
    """Replace the navigation document's ``page-list`` nav with a hidden one."""
    targets = page_targets(assignments, opf_path=opf_path, document_path=nav_path)
    if not targets:
        return False
    body = soup.find("body")
    if not isinstance(body, Tag):
        raise ContentDocumentError(f"{nav_path} has no <body> element")

    for nav in soup.find_all("nav"):
        if _is_page_list_nav(nav):
            nav.decompose()

    html = soup.find("html")
    if isinstance(html, Tag) and "xmlns" in html.attrs and "xmlns:epub" not in html.attrs:
        html["xmlns:epub"] = EPUB_OPS_NS

    page_nav = soup.new_tag("nav", attrs={"epub:type": "page-list", "hidden": "hidden"})
    ol = soup.new_tag("ol")
    for page, href in targets:
        li = soup.new_tag("li")
        anchor = soup.new_tag("a", attrs={"href": href})
        anchor.string = str(page)
        li.append(anchor)
        ol.append(li)
    page_nav.append(ol)
    body.append(page_nav)
    return True


def find_ncx_path(package: PackageDocument, container: EpubContainer) -> str | None:
    entry = package.ncx_item()
    if entry is not None:
        found = container.find(entry.path)
        if found is not None:
            return found
    return container.find_by_suffix(".ncx")


def find_nav_path(package: PackageDocument, container: EpubContainer) -> str | None:
    entry = package.nav_item()
    if entry is not None:
        found = container.find(entry.path)
        if found is not None:
            return found
    for name in container.list_entries():
        if PurePosixPath(name).name.casefold() == NAV_FALLBACK_NAME:
            return name
    return None


def rewrite_navigation(
    package: PackageDocument,
    cache: DocumentCache,
    walk: WalkResult,
) -> list[str]:
    """Regenerate both page lists from the walk's assignment map.

    Returns the container paths of the navigation documents that changed.
    """
    if not walk.config.commit or not walk.assignments:
        return []
    rewritten: list[str] = []

    ncx_path = find_ncx_path(package, cache.container)
    if ncx_path is None:
        debug_log("No NCX found; skipping legacy page list.")
    else:
        ncx = cache.get(ncx_path, xml=True)
        if ncx is not None and rewrite_ncx_page_list(
            ncx.soup, walk.assignments, opf_path=package.opf_path, ncx_path=ncx.entry
        ):
            ncx.mark_dirty()
            rewritten.append(ncx.entry)

    nav_path = find_nav_path(package, cache.container)
    if nav_path is None:
        debug_log("No navigation document found; skipping page-list nav.")
    else:
        nav = cache.get(nav_path)
        if nav is not None and rewrite_nav_page_list(
            nav.soup, walk.assignments, opf_path=package.opf_path, nav_path=nav.entry
        ):
            nav.mark_dirty()
            rewritten.append(nav.entry)

    return rewritten


__all__ = [
    "find_nav_path",
    "find_ncx_path",
    "page_targets",
    "rewrite_navigation",
    "rewrite_nav_page_list",
    "rewrite_ncx_page_list",
]
