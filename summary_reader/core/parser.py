import logging
import uuid
from itertools import count
from typing import Iterator, List

from summary_reader.core.document import EpubDocument, TocEntry
from summary_reader.core.models import (
    DEFAULT_AUTHOR, DEFAULT_TITLE, BookMetadata, BookStructure, Chapter, ImageAsset,
)
from summary_reader.core.storage import BookStore

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'image/svg+xml': 'svg',
    'image/webp': 'webp',
}

def get_image_extension(media_type: str) -> str:
    return IMAGE_EXTENSIONS.get((media_type or '').lower(), 'jpg')


def ingest_epub(epub_path, store: BookStore) -> BookStructure:
    """
    Main logic: Open EPUB -> Build structure -> Persist.
    Any parse error aborts before a structure record is written.
    """
    logger.info("Loading %s...", epub_path)
    document = EpubDocument.open(epub_path)
    return build_structure(document, store)


def build_structure(document: EpubDocument, store: BookStore) -> BookStructure:
    """
    Converts an opened document into the persisted book structure.
    Also copies the images and the source container into the book folder.
    """

    # 1. Allocate the book namespace
    book_id = str(uuid.uuid4())
    store.create_namespace(book_id)

    # 2. Extract Metadata
    metadata = _extract_metadata(document)
    author = metadata.creator

    # 3. Process TOC
    logger.info("Parsing Table of Contents...")
    chapters = _build_chapters(document.toc(), count())

    # 4. Extract Images
    logger.info("Extracting images...")
    images = _extract_images(document, store, book_id)

    structure = BookStructure(
        id=book_id,
        title=metadata.title,
        author=author,
        metadata=metadata,
        chapters=chapters,
        images=images,
    )

    # 5. Keep the container for lazy extraction, then save the record
    store.copy_source(book_id, document.path)
    store.write(book_id, structure)
    logger.info("Book %s saved (%d top-level chapters, %d images)",
                book_id, len(chapters), len(images))

    return structure

# --- Internal Helpers ---

def _extract_metadata(document: EpubDocument) -> BookMetadata:
    raw = document.metadata()
    return BookMetadata(
        title=raw.get("title") or DEFAULT_TITLE,
        creator=raw.get("creator") or raw.get("creator_file_as") or DEFAULT_AUTHOR,
        language=raw.get("language"),
        identifier=raw.get("identifier"),
        publisher=raw.get("publisher"),
        date=raw.get("date"),
        description=raw.get("description"),
    )

def _build_chapters(entries: List[TocEntry], counter: Iterator[int]) -> List[Chapter]:
    # `counter` is shared by the whole traversal so `order` never resets per level
    chapters = []
    for entry in entries:
        order = next(counter)
        chapter = Chapter(
            id=str(uuid.uuid4()),
            title=(entry.title or "").strip() or f"Chapter {order + 1}",
            order=order,
            href=entry.href,
            manifest_id=entry.manifest_id,
        )
        chapter.children = _build_chapters(entry.children, counter)
        chapters.append(chapter)
    return chapters

def _extract_images(document: EpubDocument, store: BookStore, book_id: str) -> List[ImageAsset]:
    images = []
    for image_id in document.image_ids():
        item = document.manifest[image_id]
        file_name = f"{image_id}.{get_image_extension(item.media_type)}"
        try:
            data = document.get_image(image_id)
            local_path = store.image_path(book_id, file_name)
            with open(local_path, 'wb') as f:
                f.write(data)
        except Exception as e:
            logger.warning("Failed to extract image %s (book %s): %s", item.href, book_id, e)
            continue

        images.append(ImageAsset(
            id=image_id,
            href=item.href,
            media_type=item.media_type,
            local_path=str(local_path),
        ))
    return images
