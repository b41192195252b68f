"""
Lazy chapter text extraction.
Chapters are stored without text at ingestion; the first read pulls the text
out of the saved container and caches it in structure.json.
"""

import logging
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, Comment

from summary_reader.core.document import EpubDocument
from summary_reader.core.errors import (
    ChapterExtractionError, EpubFileNotFoundError, ManifestEntryNotFoundError,
)
from summary_reader.core.models import Chapter
from summary_reader.core.storage import BookStore

logger = logging.getLogger(__name__)

# --- Utilities ---

def find_chapter(chapters: List[Chapter], chapter_id: str) -> Optional[Chapter]:
    """Depth-first search over the chapter forest."""
    for chapter in chapters:
        if chapter.id == chapter_id:
            return chapter
        found = find_chapter(chapter.children, chapter_id)
        if found:
            return found
    return None


def clean_html_content(html: str) -> str:
    """Markup -> plain text with entities decoded and whitespace collapsed."""
    soup = BeautifulSoup(html, 'html.parser')

    # Remove non-textual tags
    for tag in soup(['script', 'style', 'iframe', 'video', 'nav', 'form', 'button', 'input']):
        tag.decompose()

    # Remove HTML comments
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    body = soup.find('body')
    text = (body or soup).get_text(separator=' ')
    # Collapse whitespace
    return ' '.join(text.split())


def resolve_manifest_id(document: EpubDocument, chapter: Chapter) -> str:
    """The cached id wins; the href scan only runs for chapters never resolved."""
    if chapter.manifest_id:
        return chapter.manifest_id
    manifest_id = document.find_manifest_id(chapter.href)
    if not manifest_id:
        raise ManifestEntryNotFoundError(chapter.href)
    return manifest_id


def extract_chapter_text(document: EpubDocument, chapter: Chapter) -> None:
    """Fills `content` and `manifest_id` on the node. Raises on any failure."""
    manifest_id = resolve_manifest_id(document, chapter)
    try:
        markup = document.get_markup(manifest_id)
    except Exception as e:
        raise ChapterExtractionError(chapter.href, str(e)) from e

    text = clean_html_content(markup)
    if not text:
        raise ChapterExtractionError(chapter.href, f"No content found in {chapter.href}")

    chapter.manifest_id = manifest_id
    chapter.content = text


class ContentExtractor:
    """Serves single chapters, extracting and caching their text on first access."""

    def __init__(self, store: BookStore, opener: Callable[[str], EpubDocument] = EpubDocument.open):
        self.store = store
        self._opener = opener

    def open_document(self, book_id: str) -> EpubDocument:
        epub_path = self.store.epub_path(book_id)
        if not epub_path.exists():
            raise EpubFileNotFoundError(book_id)
        return self._opener(str(epub_path))

    def get_chapter(self, book_id: str, chapter_id: str) -> Optional[Chapter]:
        with self.store.lock(book_id):
            structure = self.store.read(book_id)
            if structure is None:
                return None

            chapter = find_chapter(structure.chapters, chapter_id)
            if chapter is None:
                return None

            if chapter.is_extracted:
                return chapter

            try:
                document = self.open_document(book_id)
                extract_chapter_text(document, chapter)
            except Exception as e:
                logger.error("Chapter extraction failed (book=%s chapter=%s href=%s): %s",
                             book_id, chapter_id, chapter.href, e)
                raise

            self.store.write(book_id, structure)
            logger.info("Extracted chapter %s of book %s (%d chars)",
                        chapter_id, book_id, len(chapter.content))
            return chapter
