"""
Thin adapter over ebooklib exposing only what the pipeline needs:
metadata, manifest, a nested TOC, and per-item content/bytes.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import unquote

import ebooklib
from ebooklib import epub

from summary_reader.core.errors import EpubParseError

logger = logging.getLogger(__name__)

@dataclass
class ManifestItem:
    href: str
    media_type: str

@dataclass
class TocEntry:
    """One navigation entry as read from the container."""
    title: Optional[str]
    href: str
    manifest_id: Optional[str] = None
    children: List['TocEntry'] = field(default_factory=list)


def strip_fragment(href: str) -> str:
    """'text/ch01.xhtml#s2' -> 'text/ch01.xhtml' (URL-decoded)."""
    return unquote(href.split('#')[0])


class EpubDocument:
    """An opened EPUB container."""

    def __init__(self, book: epub.EpubBook, path: str):
        self._book = book
        self.path = path
        self.manifest: Dict[str, ManifestItem] = {}
        for item in book.get_items():
            self.manifest[item.get_id()] = ManifestItem(
                href=item.get_name(),
                media_type=item.media_type or "",
            )

    @classmethod
    def open(cls, epub_path) -> 'EpubDocument':
        try:
            book = epub.read_epub(str(epub_path))
        except Exception as e:
            raise EpubParseError(f"Failed to read EPUB file: {e}") from e
        return cls(book, str(epub_path))

    # --- Metadata ---

    def _get_one(self, key: str) -> Optional[str]:
        data = self._book.get_metadata('DC', key)
        return data[0][0] if data else None

    def _creator_file_as(self) -> Optional[str]:
        for _, attrs in self._book.get_metadata('DC', 'creator'):
            for name, value in (attrs or {}).items():
                if name.endswith('file-as') and value:
                    return value
        return None

    def metadata(self) -> Dict[str, Optional[str]]:
        return {
            "title": self._get_one('title'),
            "creator": self._get_one('creator'),
            "creator_file_as": self._creator_file_as(),
            "language": self._get_one('language'),
            "identifier": self._get_one('identifier'),
            "publisher": self._get_one('publisher'),
            "date": self._get_one('date'),
            "description": self._get_one('description'),
        }

    # --- Manifest lookups ---

    def find_manifest_id(self, href: str) -> Optional[str]:
        """Scans the manifest for the item stored at `href` (fragment ignored)."""
        target = strip_fragment(href)
        if not target:
            return None
        for item_id, item in self.manifest.items():
            if unquote(item.href) == target:
                return item_id
        return None

    def image_ids(self) -> List[str]:
        return [item_id for item_id, item in self.manifest.items()
                if item.media_type.startswith('image/')]

    def get_markup(self, manifest_id: str) -> str:
        item = self._book.get_item_with_id(manifest_id)
        if item is None:
            raise KeyError(f"No item with id {manifest_id}")
        return item.get_content().decode('utf-8', errors='ignore')

    def get_image(self, manifest_id: str) -> bytes:
        item = self._book.get_item_with_id(manifest_id)
        if item is None:
            raise KeyError(f"No item with id {manifest_id}")
        data = item.get_content()
        if not data:
            raise ValueError(f"Image {manifest_id} is empty")
        return data

    # --- Navigation ---

    def toc(self) -> List[TocEntry]:
        """
        Nested TOC. Falls back to the spine when the navigation document is empty.
        """
        raw_toc = self._book.toc
        # An empty NCX navMap comes back as a single blank Link
        if isinstance(raw_toc, (epub.Link, epub.Section)):
            raw_toc = [raw_toc] if raw_toc.href else []
        entries = self._parse_toc_recursive(raw_toc or [])
        if not entries:
            logger.warning("Empty TOC in %s, building fallback from spine", self.path)
            entries = self._fallback_toc()
        return entries

    def _entry(self, title, href, children=None) -> TocEntry:
        href = href or ""
        return TocEntry(
            title=title,
            href=href,
            manifest_id=self.find_manifest_id(href),
            children=children or [],
        )

    def _parse_toc_recursive(self, toc_list) -> List[TocEntry]:
        result = []
        for item in toc_list:
            # ebooklib TOC items are either `Link` objects or tuples (Section, [Children])
            if isinstance(item, tuple):
                section, children = item
                result.append(self._entry(section.title, section.href,
                                          self._parse_toc_recursive(children)))
            elif isinstance(item, (epub.Link, epub.Section)):
                result.append(self._entry(item.title, item.href))
        return result

    def _fallback_toc(self) -> List[TocEntry]:
        toc = []
        for item_id, _ in self._book.spine:
            item = self._book.get_item_with_id(item_id)
            if item is None or item.get_type() != ebooklib.ITEM_DOCUMENT:
                continue
            name = item.get_name()
            stem = os.path.splitext(os.path.basename(name))[0]
            title = stem.replace('_', ' ').replace('-', ' ').title()
            toc.append(TocEntry(title=title, href=name, manifest_id=item_id))
        return toc
