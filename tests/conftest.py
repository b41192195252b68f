# tests/conftest.py
import pytest
from ebooklib import epub

from summary_reader.core.storage import BookStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
SVG_BYTES = b'<svg xmlns="http://www.w3.org/2000/svg" width="1" height="1"/>'

CHAPTER_BODIES = {
    "intro": "<h1>Introduction</h1><p>Welcome &amp; hello.</p>",
    "part1": "<h1>Part One</h1><p>The   first\n part.</p>",
    "ch1": "<h2>Chapter A</h2><p>Alpha &lt;text&gt;.</p><script>var x = 1;</script>",
    "ch1_1": "<h3>Subsection</h3><p>Nested&nbsp;detail.</p>",
    "ch2": "<p>Untitled chapter body.</p>",
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer environment out of every test."""
    for name in ("GOOGLE_API_KEY", "SUMMARY_MODEL_NAME", "SUMMARY_PROMPT",
                 "DEFAULT_RATIO", "SUMMARY_MAX_RETRIES", "EXTRACTION_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store(tmp_path):
    return BookStore(tmp_path / "library")


def write_sample_epub(path, title="Sample Book", author="Jane Doe"):
    """
    Writes a small EPUB with a three-level TOC:

        Introduction          (intro.xhtml)
        Part One              (part1.xhtml)
            Chapter A         (ch1.xhtml)
                Subsection    (ch1_1.xhtml#detail)
            <no title>        (ch2.xhtml)
    """
    book = epub.EpubBook()
    book.set_identifier("sample-id-123")
    if title:
        book.set_title(title)
    book.set_language("en")
    if author:
        book.add_author(author)
    book.add_metadata("DC", "publisher", "Test Press")

    items = {}
    for uid, body in CHAPTER_BODIES.items():
        item = epub.EpubHtml(uid=uid, title=uid, file_name=f"{uid}.xhtml", lang="en")
        item.content = body
        book.add_item(item)
        items[uid] = item

    cover = epub.EpubImage()
    cover.id = "cover-img"
    cover.file_name = "images/cover.png"
    cover.media_type = "image/png"
    cover.content = PNG_BYTES
    book.add_item(cover)

    diagram = epub.EpubImage()
    diagram.id = "diagram"
    diagram.file_name = "images/diagram.svg"
    diagram.media_type = "image/svg+xml"
    diagram.content = SVG_BYTES
    book.add_item(diagram)

    book.toc = (
        epub.Link("intro.xhtml", "Introduction", "intro"),
        (epub.Section("Part One", href="part1.xhtml"), (
            (epub.Section("Chapter A", href="ch1.xhtml"), (
                epub.Link("ch1_1.xhtml#detail", "Subsection", "ch1_1"),
            )),
            epub.Link("ch2.xhtml", "", "ch2"),
        )),
    )

    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav"] + list(items.values())

    epub.write_epub(str(path), book)
    return path


@pytest.fixture
def sample_epub(tmp_path):
    return write_sample_epub(tmp_path / "sample.epub")


class FakeDocument:
    """
    Minimal stand-in for EpubDocument, exposing only what the pipeline uses,
    without going through ebooklib.
    """

    def __init__(self, path, toc=None, manifest=None, markup=None, images=None,
                 failing_images=(), metadata=None):
        from summary_reader.core.document import ManifestItem
        self.path = str(path)
        self._toc = toc or []
        self.manifest = {k: ManifestItem(href=v[0], media_type=v[1])
                         for k, v in (manifest or {}).items()}
        self._markup = markup or {}
        self._images = images or {}
        self._failing = set(failing_images)
        self._metadata = metadata or {}
        self.markup_calls = []

    def metadata(self):
        return dict(self._metadata)

    def toc(self):
        return self._toc

    def image_ids(self):
        return [k for k, v in self.manifest.items() if v.media_type.startswith("image/")]

    def find_manifest_id(self, href):
        target = href.split("#")[0]
        for item_id, item in self.manifest.items():
            if item.href == target:
                return item_id
        return None

    def get_markup(self, manifest_id):
        self.markup_calls.append(manifest_id)
        if manifest_id not in self._markup:
            raise KeyError(f"No item with id {manifest_id}")
        return self._markup[manifest_id]

    def get_image(self, manifest_id):
        if manifest_id in self._failing:
            raise IOError(f"corrupt image {manifest_id}")
        return self._images.get(manifest_id, b"img")


@pytest.fixture
def fake_document_cls():
    return FakeDocument


@pytest.fixture
def source_file(tmp_path):
    """Stand-in container file for builds that use a FakeDocument."""
    path = tmp_path / "source.epub"
    path.write_bytes(b"PK\x03\x04 fake")
    return path
