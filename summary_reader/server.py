import asyncio
import base64
import binascii
import logging
import mimetypes
import os
import tempfile
import zipfile
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from summary_reader.core.aggregator import ChapterAggregator
from summary_reader.core.config import ConfigService
from summary_reader.core.errors import (
    EpubParseError, EpubValidationError, ReaderError, SummarizationError,
)
from summary_reader.core.extractor import ContentExtractor
from summary_reader.core.models import BookStructure
from summary_reader.core.parser import ingest_epub
from summary_reader.core.storage import BookStore
from summary_reader.core.summarizer import SummaryService
from summary_reader.utils.paths import get_library_dir

logger = logging.getLogger(__name__)

app = FastAPI(title="Summary Reader")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024
EPUB_MIME_TYPE = "application/epub+zip"

# --- Dependencies ---

@lru_cache(maxsize=1)
def get_store() -> BookStore:
    return BookStore(get_library_dir())

def get_config_service() -> ConfigService:
    return ConfigService()

def get_summary_service(config_service: ConfigService = Depends(get_config_service)) -> SummaryService:
    try:
        return SummaryService(config_service.get_config())
    except ValueError as e:
        raise HTTPException(status_code=503, detail=f"Summarization not available: {e}")

# --- Error mapping ---

@app.exception_handler(EpubValidationError)
async def validation_error_handler(request: Request, exc: EpubValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})

@app.exception_handler(ReaderError)
async def reader_error_handler(request: Request, exc: ReaderError):
    if isinstance(exc, EpubParseError):
        message = "Failed to process EPUB file"
    elif isinstance(exc, SummarizationError):
        message = "Failed to summarize content"
    else:
        message = "Failed to extract chapter content"
    logger.error("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": message, "details": str(exc)})

async def _run_with_deadline(func, *args, timeout: float):
    """Runs blocking extraction work off the event loop, bounded by `timeout` seconds."""
    try:
        return await asyncio.wait_for(run_in_threadpool(func, *args), timeout=timeout)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail="Chapter extraction timed out")

# --- Health ---

@app.get("/api/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now().isoformat()}

# --- Upload ---

def _validate_upload(upload: UploadFile) -> None:
    name = (upload.filename or "").lower()
    if upload.content_type != EPUB_MIME_TYPE and not name.endswith(".epub"):
        raise EpubValidationError("Only EPUB files are allowed")

def _save_upload(upload: UploadFile, target: str) -> None:
    size = 0
    with open(target, "wb") as f:
        while True:
            chunk = upload.file.read(1024 * 1024)
            if not chunk:
                break
            size += len(chunk)
            if size > MAX_UPLOAD_BYTES:
                raise EpubValidationError("EPUB file exceeds the 50MB limit")
            f.write(chunk)
    if not zipfile.is_zipfile(target):
        raise EpubValidationError("Uploaded file is not a valid EPUB container")

@app.post("/api/upload")
async def upload_epub(epub: Optional[UploadFile] = File(None), store: BookStore = Depends(get_store)):
    """Ingests an EPUB: builds and persists its structure."""
    if epub is None:
        raise HTTPException(status_code=400, detail="No EPUB file uploaded")
    _validate_upload(epub)

    with tempfile.TemporaryDirectory() as tmpdirname:
        tmp_path = os.path.join(tmpdirname, "upload.epub")
        await run_in_threadpool(_save_upload, epub, tmp_path)
        structure = await run_in_threadpool(ingest_epub, tmp_path, store)

    logger.info("Uploaded %s as book %s", epub.filename, structure.id)
    return {"success": True, "bookId": structure.id, "structure": structure.to_dict()}

# --- Books ---

@app.get("/api/books")
async def list_books(store: BookStore = Depends(get_store)):
    books = await run_in_threadpool(store.list_books)
    return [book.to_dict() for book in books]

@app.delete("/api/books/{book_id}")
async def delete_book(book_id: str, store: BookStore = Depends(get_store)):
    deleted = await run_in_threadpool(_delete_locked, store, book_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Book not found")
    return {"success": True, "message": "Book deleted successfully"}

@app.get("/api/books/{book_id}/structure")
@app.get("/api/books/{book_id}/structure-nested")
async def get_structure(book_id: str, store: BookStore = Depends(get_store)):
    structure = store.read(book_id)
    if structure is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return structure.to_dict()

@app.put("/api/books/{book_id}/structure")
async def update_structure(book_id: str, payload: Dict[str, Any], store: BookStore = Depends(get_store)):
    """Whole-record replace; there is no field-level update."""
    try:
        structure = BookStructure.from_dict(payload)
    except (KeyError, TypeError, AttributeError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid book structure: {e}")
    if structure.id != book_id:
        raise HTTPException(status_code=400, detail="Structure id does not match book id")

    if not await run_in_threadpool(_replace_locked, store, structure):
        raise HTTPException(status_code=404, detail="Book not found")
    return {"success": True}

# Book locks are only taken off the event loop

def _delete_locked(store: BookStore, book_id: str) -> bool:
    with store.lock(book_id):
        return store.delete(book_id)

def _replace_locked(store: BookStore, structure: BookStructure) -> bool:
    with store.lock(structure.id):
        if not store.exists(structure.id):
            return False
        store.write(structure.id, structure)
    return True

@app.get("/api/books/{book_id}/content/{chapter_id}")
async def get_chapter_content(
    book_id: str,
    chapter_id: str,
    store: BookStore = Depends(get_store),
    config_service: ConfigService = Depends(get_config_service),
):
    extractor = ContentExtractor(store)
    timeout = config_service.get_config().extraction_timeout
    chapter = await _run_with_deadline(extractor.get_chapter, book_id, chapter_id, timeout=timeout)
    if chapter is None:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return chapter.to_dict()

@app.get("/api/books/{book_id}/full-content/{chapter_id}")
async def get_full_chapter_content(
    book_id: str,
    chapter_id: str,
    store: BookStore = Depends(get_store),
    config_service: ConfigService = Depends(get_config_service),
):
    """Chapter text merged with all of its sub-chapters."""
    aggregator = ChapterAggregator(ContentExtractor(store))
    timeout = config_service.get_config().extraction_timeout
    chapter = await _run_with_deadline(aggregator.get_full_chapter, book_id, chapter_id, timeout=timeout)
    if chapter is None:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return chapter.to_dict()

@app.get("/static/{book_id}/{file_name}")
async def serve_image(book_id: str, file_name: str, store: BookStore = Depends(get_store)):
    """Serves the images extracted at ingestion time."""
    try:
        path = store.image_path(book_id, file_name)
    except ValueError:
        raise HTTPException(status_code=404, detail="Image not found")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Image not found")
    return FileResponse(path)

# --- Configuration ---

@app.get("/api/config")
async def get_config(config_service: ConfigService = Depends(get_config_service)):
    return config_service.get_config().to_json()

@app.put("/api/config")
async def update_config(updates: Dict[str, Any], config_service: ConfigService = Depends(get_config_service)):
    try:
        config = config_service.update_config(updates)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid configuration: {e}")
    return config.to_json()

# --- Summarization ---

class SummarizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = ""
    images: List[str] = []  # '/static/<book>/<file>' paths or data: URLs
    ratio: Optional[float] = None
    custom_prompt: Optional[str] = Field(None, alias="customPrompt")
    language: Optional[str] = None

def _load_image_part(ref: str, store: BookStore) -> Optional[Dict[str, Any]]:
    """Turns an image reference from the UI into an inline part for the model."""
    if ref.startswith("data:"):
        header, _, payload = ref.partition(",")
        mime_type = header[5:].split(";")[0] or "image/jpeg"
        try:
            return {"mime_type": mime_type, "data": base64.b64decode(payload)}
        except (binascii.Error, ValueError):
            return None

    path_part = ref.split("/static/", 1)
    if len(path_part) != 2:
        return None
    pieces = path_part[1].split("/")
    if len(pieces) != 2:
        return None
    try:
        path = store.image_path(pieces[0], pieces[1])
    except ValueError:
        return None
    if not path.is_file():
        return None
    mime_type = mimetypes.guess_type(str(path))[0] or "image/jpeg"
    return {"mime_type": mime_type, "data": path.read_bytes()}

@app.post("/api/summarize")
async def summarize(
    request: SummarizeRequest,
    store: BookStore = Depends(get_store),
    config_service: ConfigService = Depends(get_config_service),
    summary_service: SummaryService = Depends(get_summary_service),
):
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="Content is required")

    ratio = request.ratio if request.ratio is not None else config_service.get_config().default_ratio
    if ratio <= 0 or ratio > 1:
        raise HTTPException(status_code=400, detail="Ratio must be between 0 and 1")

    images = []
    for ref in request.images:
        part = _load_image_part(ref, store)
        if part is None:
            logger.warning("Skipping unreadable image reference %s", ref[:80])
            continue
        images.append(part)

    return await run_in_threadpool(
        summary_service.summarize,
        request.content,
        ratio,
        images,
        request.custom_prompt,
        request.language,
    )

@app.get("/api/models")
async def list_models(summary_service: SummaryService = Depends(get_summary_service)):
    try:
        return await run_in_threadpool(summary_service.list_models)
    except Exception as e:
        logger.error("Error fetching models: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch models")

def start_server(host: str = "127.0.0.1", port: int = 8123):
    import uvicorn
    print(f"Starting server at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port)

if __name__ == "__main__":
    start_server()
