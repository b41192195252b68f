from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

DEFAULT_TITLE = "Unknown Title"
DEFAULT_AUTHOR = "Unknown Author"

@dataclass
class Chapter:
    """
    A node of the table of contents.
    `content` is None until the chapter text has been extracted from the EPUB.
    """
    id: str
    title: str
    order: int        # Pre-order position across the whole tree
    href: str         # Path of the source fragment inside the container (e.g. 'text/ch01.xhtml#s1')
    content: Optional[str] = None
    manifest_id: Optional[str] = None  # Cached once resolved, e.g. 'item_3'
    children: List['Chapter'] = field(default_factory=list)

    @property
    def is_extracted(self) -> bool:
        return self.content is not None

    def with_content(self, content: str) -> 'Chapter':
        """Returns a copy carrying `content`; the node itself is left untouched."""
        return replace(self, content=content)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "content": self.content or "",
            "order": self.order,
            "href": self.href,
        }
        if self.manifest_id:
            data["manifestId"] = self.manifest_id
        data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Chapter':
        content = data.get("content") or ""
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            order=data.get("order", 0),
            href=data.get("href", ""),
            # A blank string on disk means "not extracted yet"
            content=content if content.strip() else None,
            manifest_id=data.get("manifestId") or None,
            children=[cls.from_dict(c) for c in data.get("children") or []],
        )


@dataclass
class ImageAsset:
    """An image copied out of the container at ingestion time."""
    id: str           # Manifest id, reused as the file stem
    href: str         # Original path inside the EPUB
    media_type: str
    local_path: str   # Durable copy, e.g. 'data/library/<book>/cover.jpg'

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "href": self.href,
            "mediaType": self.media_type,
            "localPath": self.local_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ImageAsset':
        return cls(
            id=data["id"],
            href=data.get("href", ""),
            media_type=data.get("mediaType", "image/jpeg"),
            local_path=data.get("localPath", ""),
        )


@dataclass
class BookMetadata:
    """Descriptive Dublin Core fields, passed through without validation."""
    title: str
    creator: Optional[str] = None
    language: Optional[str] = None
    identifier: Optional[str] = None
    publisher: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"title": self.title}
        for key in ("creator", "language", "identifier", "publisher", "date", "description"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BookMetadata':
        return cls(
            title=data.get("title") or DEFAULT_TITLE,
            creator=data.get("creator"),
            language=data.get("language"),
            identifier=data.get("identifier"),
            publisher=data.get("publisher"),
            date=data.get("date"),
            description=data.get("description"),
        )


@dataclass
class BookStructure:
    """The root record persisted as structure.json."""
    id: str
    title: str
    author: str
    metadata: BookMetadata
    chapters: List[Chapter] = field(default_factory=list)
    images: List[ImageAsset] = field(default_factory=list)

    def iter_chapters(self):
        """Yields every chapter of the forest in pre-order."""
        stack = list(reversed(self.chapters))
        while stack:
            chapter = stack.pop()
            yield chapter
            stack.extend(reversed(chapter.children))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "chapters": [c.to_dict() for c in self.chapters],
            "images": [i.to_dict() for i in self.images],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BookStructure':
        metadata = BookMetadata.from_dict(data.get("metadata") or {})
        return cls(
            id=data["id"],
            title=data.get("title") or DEFAULT_TITLE,
            author=data.get("author") or DEFAULT_AUTHOR,
            metadata=metadata,
            chapters=[Chapter.from_dict(c) for c in data.get("chapters") or []],
            images=[ImageAsset.from_dict(i) for i in data.get("images") or []],
        )


@dataclass
class BookListItem:
    """Summary row for the library view."""
    id: str
    title: str
    author: str
    metadata: BookMetadata
    chapter_count: int
    upload_date: str  # ISO timestamp of the upload (book.epub creation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "metadata": self.metadata.to_dict(),
            "chapterCount": self.chapter_count,
            "uploadDate": self.upload_date,
        }
