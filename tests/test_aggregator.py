# tests/test_aggregator.py
import pytest

from summary_reader.core.aggregator import ChapterAggregator, aggregate_content
from summary_reader.core.document import EpubDocument
from summary_reader.core.errors import ManifestEntryNotFoundError
from summary_reader.core.extractor import ContentExtractor
from summary_reader.core.models import BookMetadata, BookStructure, Chapter
from summary_reader.core.parser import ingest_epub


class CountingOpener:

    def __init__(self):
        self.calls = 0

    def __call__(self, path):
        self.calls += 1
        return EpubDocument.open(path)


def refuse_open(path):
    raise AssertionError("container should not be opened")


def chapter_by_title(structure, title):
    return next(c for c in structure.iter_chapters() if c.title == title)


@pytest.fixture
def book(sample_epub, store):
    return ingest_epub(sample_epub, store)


@pytest.fixture
def opener():
    return CountingOpener()


@pytest.fixture
def aggregator(store, opener):
    return ChapterAggregator(ContentExtractor(store, opener=opener))


@pytest.fixture
def prefilled_book(store):
    """A -> B -> C with every node already extracted."""
    grandchild = Chapter(id="c", title="C", order=2, href="c.xhtml", content="C")
    child = Chapter(id="b", title="B", order=1, href="b.xhtml", content="B", children=[grandchild])
    root = Chapter(id="a", title="A", order=0, href="a.xhtml", content="A", children=[child])
    structure = BookStructure(id="book-abc", title="T", author="Au",
                              metadata=BookMetadata(title="T"), chapters=[root])
    store.create_namespace(structure.id)
    store.write(structure.id, structure)
    return structure


class TestAggregateContent:

    def test_pre_order_newline_join(self):
        tree = Chapter(id="a", title="A", order=0, href="a", content="  A ", children=[
            Chapter(id="b", title="B", order=1, href="b", content="B\n", children=[
                Chapter(id="c", title="C", order=2, href="c", content="C"),
            ]),
            Chapter(id="d", title="D", order=3, href="d", content="D"),
        ])
        assert aggregate_content(tree) == "A\nB\nC\nD"

    def test_leaf_is_its_own_content(self):
        assert aggregate_content(Chapter(id="a", title="A", order=0, href="a", content="solo")) == "solo"


class TestGetFullChapter:

    def test_nested_aggregate_and_per_node_storage(self, store, prefilled_book):
        aggregator = ChapterAggregator(ContentExtractor(store, opener=refuse_open))

        full = aggregator.get_full_chapter(prefilled_book.id, "a")

        assert full.content == "A\nB\nC"
        stored = store.read(prefilled_book.id)
        assert stored.chapters[0].content == "A"
        assert stored.chapters[0].children[0].content == "B"

    def test_extracts_whole_subtree_with_one_open(self, aggregator, opener, book, store):
        part_one = chapter_by_title(book, "Part One")

        full = aggregator.get_full_chapter(book.id, part_one.id)

        assert full.content == "\n".join([
            "Part One The first part.",
            "Chapter A Alpha <text>.",
            "Subsection Nested detail.",
            "Untitled chapter body.",
        ])
        assert full.id == part_one.id
        assert opener.calls == 1

        stored = store.read(book.id)
        assert chapter_by_title(stored, "Part One").content == "Part One The first part."
        assert chapter_by_title(stored, "Subsection").content == "Subsection Nested detail."
        # Siblings outside the subtree stay untouched
        assert chapter_by_title(stored, "Introduction").content is None

    def test_second_call_does_not_reopen(self, aggregator, opener, book):
        part_one = chapter_by_title(book, "Part One")
        first = aggregator.get_full_chapter(book.id, part_one.id)
        second = aggregator.get_full_chapter(book.id, part_one.id)
        assert first.content == second.content
        assert opener.calls == 1

    def test_leaf_behaves_like_single_chapter(self, aggregator, book, store):
        intro = chapter_by_title(book, "Introduction")

        full = aggregator.get_full_chapter(book.id, intro.id)

        assert full.content == "Introduction Welcome & hello."
        assert chapter_by_title(store.read(book.id), "Introduction").content == full.content

    def test_unknown_ids(self, aggregator, book):
        assert aggregator.get_full_chapter("missing", "x") is None
        assert aggregator.get_full_chapter(book.id, "missing") is None

    def test_failure_persists_nothing(self, aggregator, book, store):
        structure = store.read(book.id)
        broken = chapter_by_title(structure, "Chapter 5")
        broken.manifest_id = None
        broken.href = "gone.xhtml"
        store.write(book.id, structure)
        part_one = chapter_by_title(structure, "Part One")

        with pytest.raises(ManifestEntryNotFoundError):
            aggregator.get_full_chapter(book.id, part_one.id)

        stored = store.read(book.id)
        assert chapter_by_title(stored, "Part One").content is None
        assert chapter_by_title(stored, "Chapter A").content is None
