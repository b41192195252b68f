import logging
from typing import Optional

from summary_reader.core.document import EpubDocument
from summary_reader.core.extractor import ContentExtractor, extract_chapter_text, find_chapter
from summary_reader.core.models import Chapter

logger = logging.getLogger(__name__)


def aggregate_content(chapter: Chapter) -> str:
    """Pre-order concatenation of the node's text and all of its descendants' text."""
    parts = [(chapter.content or "").strip()]
    parts.extend(aggregate_content(child) for child in chapter.children)
    return "\n".join(part for part in parts if part).strip()


class ChapterAggregator:
    """
    Builds the "full chapter" view: a chapter merged with all its sub-chapters.
    Each node keeps its own text on disk; the merged text is only returned.
    """

    def __init__(self, extractor: ContentExtractor):
        self.extractor = extractor
        self.store = extractor.store

    def get_full_chapter(self, book_id: str, chapter_id: str) -> Optional[Chapter]:
        with self.store.lock(book_id):
            structure = self.store.read(book_id)
            if structure is None:
                return None

            target = find_chapter(structure.chapters, chapter_id)
            if target is None:
                return None

            # The container is opened at most once, and only if something is missing
            document: Optional[EpubDocument] = None
            extracted = 0
            for node in _iter_subtree(target):
                if node.is_extracted:
                    continue
                if document is None:
                    document = self.extractor.open_document(book_id)
                try:
                    extract_chapter_text(document, node)
                except Exception as e:
                    logger.error("Chapter extraction failed (book=%s chapter=%s href=%s): %s",
                                 book_id, node.id, node.href, e)
                    raise
                extracted += 1

            if extracted:
                self.store.write(book_id, structure)
                logger.info("Extracted %d chapters under %s of book %s", extracted, chapter_id, book_id)

        return target.with_content(aggregate_content(target))


def _iter_subtree(chapter: Chapter):
    yield chapter
    for child in chapter.children:
        yield from _iter_subtree(child)
