import argparse
import logging
from pathlib import Path

from summary_reader.core.errors import ReaderError
from summary_reader.core.parser import ingest_epub
from summary_reader.core.storage import BookStore
from summary_reader.utils.paths import get_library_dir

def main(argv=None):
    parser = argparse.ArgumentParser(description="Summary Reader")
    subparsers = parser.add_subparsers(dest="command")

    add_parser = subparsers.add_parser("add", help="Add EPUB")
    add_parser.add_argument("file")

    subparsers.add_parser("list", help="List books")

    delete_parser = subparsers.add_parser("delete", help="Delete a book")
    delete_parser.add_argument("book_id")

    serve_parser = subparsers.add_parser("serve", help="Start Server")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8123)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    if args.command == "add":
        file_path = Path(args.file)
        if not file_path.is_file():
            print(f"Error: {file_path} not found")
            return 1
        try:
            structure = ingest_epub(file_path, BookStore(get_library_dir()))
        except ReaderError as e:
            print(f"Error: {e}")
            return 1
        print(f"Added: {structure.title} ({structure.id})")

    elif args.command == "list":
        for book in BookStore(get_library_dir()).list_books():
            print(f"{book.id}  {book.title} - {book.author} ({book.chapter_count} chapters)")

    elif args.command == "delete":
        if not BookStore(get_library_dir()).delete(args.book_id):
            print(f"Book not found: {args.book_id}")
            return 1
        print(f"Deleted: {args.book_id}")

    elif args.command == "serve":
        from summary_reader.server import start_server
        start_server(args.host, args.port)
    else:
        parser.print_help()
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
