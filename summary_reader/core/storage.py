"""Module for persisting book structures on disk, one folder per book."""
import json
import logging
import os
import shutil
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from summary_reader.core.models import BookListItem, BookStructure
from summary_reader.utils.paths import ensure_dir_exists

logger = logging.getLogger(__name__)

STRUCTURE_FILE = "structure.json"
EPUB_FILE = "book.epub"


def _creation_time(path: Path) -> float:
    stat = path.stat()
    # st_birthtime only exists on macOS/BSD; Linux falls back to ctime
    return getattr(stat, "st_birthtime", stat.st_ctime)


class BookStore:
    """
    Layout:
        <library>/<book_id>/structure.json
        <library>/<book_id>/book.epub
        <library>/<book_id>/<manifest_id>.<ext>
    """

    def __init__(self, library_dir):
        self.library_dir = Path(library_dir)
        ensure_dir_exists(self.library_dir)
        # Entries vanish once no caller holds the lock
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    # --- Paths ---

    def book_dir(self, book_id: str) -> Path:
        if not book_id or os.path.basename(book_id) != book_id or book_id in (".", ".."):
            raise ValueError(f"Invalid book id: {book_id!r}")
        return self.library_dir / book_id

    def structure_path(self, book_id: str) -> Path:
        return self.book_dir(book_id) / STRUCTURE_FILE

    def epub_path(self, book_id: str) -> Path:
        return self.book_dir(book_id) / EPUB_FILE

    def image_path(self, book_id: str, file_name: str) -> Path:
        return self.book_dir(book_id) / os.path.basename(file_name)

    # --- Locking ---

    @contextmanager
    def lock(self, book_id: str):
        """Serializes read-modify-write cycles on one book within this process."""
        with self._locks_guard:
            book_lock = self._locks.setdefault(book_id, threading.Lock())
        with book_lock:
            yield

    # --- Records ---

    def create_namespace(self, book_id: str) -> Path:
        path = self.book_dir(book_id)
        ensure_dir_exists(path)
        return path

    def exists(self, book_id: str) -> bool:
        try:
            return self.structure_path(book_id).exists()
        except ValueError:
            return False

    def read(self, book_id: str) -> Optional[BookStructure]:
        """Returns None when the book has no structure record."""
        try:
            path = self.structure_path(book_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return BookStructure.from_dict(data)

    def write(self, book_id: str, structure: BookStructure) -> None:
        path = self.structure_path(book_id)
        ensure_dir_exists(path.parent)
        # Readers never observe a partially written record
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(structure.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    def copy_source(self, book_id: str, epub_path) -> Path:
        target = self.epub_path(book_id)
        ensure_dir_exists(target.parent)
        shutil.copyfile(epub_path, target)
        return target

    def delete(self, book_id: str) -> bool:
        """Removes the whole namespace. Returns False when the book does not exist."""
        try:
            path = self.book_dir(book_id)
        except ValueError:
            return False
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        logger.info("Deleted book %s", book_id)
        return True

    def _upload_marker(self, book_id: str) -> Path:
        # book.epub is written once at ingest; structure.json is replaced on every save
        epub_path = self.epub_path(book_id)
        if epub_path.is_file():
            return epub_path
        return self.structure_path(book_id)

    def list_books(self) -> List[BookListItem]:
        """All readable books, newest first. Corrupt records are logged and skipped."""
        entries = []
        if not self.library_dir.exists():
            return []

        for item in os.listdir(self.library_dir):
            structure_file = self.library_dir / item / STRUCTURE_FILE
            if not structure_file.is_file():
                continue
            try:
                with open(structure_file, 'r', encoding='utf-8') as f:
                    structure = BookStructure.from_dict(json.load(f))
                created = _creation_time(self._upload_marker(item))
            except Exception as e:
                logger.error("Error reading structure for book %s: %s", item, e)
                continue

            entries.append((created, BookListItem(
                id=structure.id,
                title=structure.title,
                author=structure.author,
                metadata=structure.metadata,
                chapter_count=len(structure.chapters),
                upload_date=datetime.fromtimestamp(created).isoformat(),
            )))

        entries.sort(key=lambda entry: entry[0], reverse=True)
        return [book for _, book in entries]
