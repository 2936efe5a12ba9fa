import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from epub_reader.core.cache import ActiveBookCache
from epub_reader.core.errors import (
    BookImportError,
    LibraryStorageError,
    NoBookLoadedError,
    PageOutOfBoundsError,
    UnknownPathError,
)
from epub_reader.core.importer import BookImporter
from epub_reader.core.library import LibraryStore
from epub_reader.core.models import BookSummary
from epub_reader.core.resolver import QueryResolver
from epub_reader.utils.paths import get_data_dir, get_db_path, get_library_dir

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class ImportRequest(BaseModel):
    path: str


class ProgressUpdate(BaseModel):
    page: int


def _resolver(request: Request) -> QueryResolver:
    return request.app.state.resolver


def _importer(request: Request) -> BookImporter:
    return request.app.state.importer


def _lookup_error(e: Exception) -> HTTPException:
    if isinstance(e, NoBookLoadedError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=404, detail=str(e))


@router.post("/import")
async def import_book(request: Request, payload: ImportRequest):
    try:
        summary = await _importer(request).import_book(payload.path)
    except BookImportError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LibraryStorageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return JSONResponse(summary.to_dict())


@router.get("/pages/{page}")
async def get_page(request: Request, page: int):
    try:
        resource = await _resolver(request).page(page)
    except (NoBookLoadedError, PageOutOfBoundsError) as e:
        raise _lookup_error(e)
    return JSONResponse(resource.to_dict())


@router.get("/pages/{page}/links")
async def get_page_links(request: Request, page: int):
    try:
        links = _resolver(request).page_links(page)
    except (NoBookLoadedError, PageOutOfBoundsError) as e:
        raise _lookup_error(e)
    return JSONResponse([asdict(link) for link in links])


@router.get("/toc")
async def get_toc(request: Request):
    try:
        toc = _resolver(request).table_of_contents()
    except NoBookLoadedError as e:
        raise _lookup_error(e)
    return JSONResponse([[title, idref] for title, idref in toc])


@router.get("/library")
async def get_library(request: Request):
    entries = await _resolver(request).library()
    return JSONResponse([BookSummary.from_entry(entry).to_dict() for entry in entries])


@router.post("/library/{checksum}/open")
async def open_library_book(request: Request, checksum: int):
    try:
        summary = await _importer(request).open_book(checksum)
    except BookImportError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return JSONResponse(summary.to_dict())


@router.get("/library/{checksum}/cover")
async def get_cover(request: Request, checksum: int):
    entry = await run_in_threadpool(request.app.state.store.find_by_checksum, checksum)
    if entry is None or not entry.cover_path or not os.path.exists(entry.cover_path):
        raise HTTPException(status_code=404, detail="Cover not found")
    return FileResponse(entry.cover_path)


@router.get("/progress/{checksum}")
async def get_last_page(request: Request, checksum: int):
    try:
        page = await _resolver(request).last_read_page(checksum)
    except LibraryStorageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"page": page}


@router.put("/progress/{checksum}")
async def set_last_page(request: Request, checksum: int, update: ProgressUpdate):
    try:
        await _resolver(request).set_last_read_page(checksum, update.page)
    except LibraryStorageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"status": "saved"}


@router.get("/identifiers/{identifier}/page")
async def page_for_identifier(request: Request, identifier: str):
    try:
        page = _resolver(request).page_for_identifier(identifier)
    except NoBookLoadedError as e:
        raise _lookup_error(e)
    return {"page": page}


@router.get("/paths")
async def identifier_for_path(request: Request, path: str):
    try:
        identifier = _resolver(request).identifier_for_path(path)
    except (NoBookLoadedError, UnknownPathError) as e:
        raise _lookup_error(e)
    return {"identifier": identifier}


def create_app(data_dir: Optional[os.PathLike] = None) -> FastAPI:
    """Build the app with its own store and its own (empty) active book cache."""
    root = get_data_dir(data_dir)
    store = LibraryStore(get_db_path(root))
    cache = ActiveBookCache()

    app = FastAPI(title="epub-reader")
    app.state.store = store
    app.state.cache = cache
    app.state.resolver = QueryResolver(cache, store)
    app.state.importer = BookImporter(cache, store, get_library_dir(root))
    app.include_router(router)
    logger.info("Library data in %s", Path(root).resolve())
    return app


def start_server(host: str = "127.0.0.1", port: int = 8123, data_dir: Optional[os.PathLike] = None):
    import uvicorn
    logger.info("Starting server at http://%s:%s", host, port)
    uvicorn.run(create_app(data_dir), host=host, port=port)
