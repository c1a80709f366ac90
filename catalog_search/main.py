"""FastAPI application wiring the catalog search service."""
from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from time import perf_counter
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from .cache import SearchCache, build_cache_backend
from .config import settings
from .csv_loader import read_products
from .errors import EmptyIngestionInputError, InvalidRequestError, StoreUnavailableError
from .es_client import create_client
from .importer import IngestionCoordinator
from .indexing import ensure_index, index_is_empty
from .models import (
    BrowseResponse,
    Product,
    ProductsPayload,
    ProductsResponse,
    SearchResponse,
    SortMode,
    SuggestionsPayload,
    SuggestResponse,
)
from .search_service import SearchService
from .store import ElasticsearchProductStore

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL = logging.getLevelName(settings.log_level.upper())

# uvicorn installs its own handlers; ``force=True`` replaces them so every
# module logs with the same format.
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, force=True)
for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "elastic_transport"):
    logging.getLogger(name).setLevel(LOG_LEVEL)

logger = logging.getLogger(__name__)
logger.info("Logging configured at %s", settings.log_level.upper())

MIN_SUGGEST_PREFIX = 2
UPLOAD_EXTENSIONS = {".csv", ".tsv", ".txt"}
UPLOAD_CHUNK_BYTES = 1024 * 1024

app = FastAPI(title="Catalog Search Service")


@app.on_event("startup")
async def startup_event() -> None:
    es = create_client(settings)
    await ensure_index(es, settings.es_index)
    store = ElasticsearchProductStore(es, settings.es_index, timeout=settings.store_timeout_seconds)
    cache = SearchCache(build_cache_backend(settings), settings)
    app.state.es = es
    app.state.search_service = SearchService(store, cache)
    app.state.ingestion = IngestionCoordinator(store, cache, settings)
    if settings.load_on_startup and await index_is_empty(es, settings.es_index):
        report = await app.state.ingestion.load_from_file(settings.data_path)
        logger.info("Imported %s products on startup", report.inserted)


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


def get_ingestion(request: Request) -> IngestionCoordinator:
    return request.app.state.ingestion


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})


@app.exception_handler(EmptyIngestionInputError)
async def empty_input_handler(request: Request, exc: EmptyIngestionInputError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "message": str(exc)})


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error("Store unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"success": False, "message": "Product store unavailable"})


def validate_paging(page: int, limit: int) -> None:
    if page < 1:
        raise InvalidRequestError("Page must be greater than 0")
    if limit < 1 or limit > settings.max_page_size:
        raise InvalidRequestError(f"Limit must be between 1 and {settings.max_page_size}")


def parse_sort(sort_by: Optional[str]) -> SortMode:
    if not sort_by:
        return SortMode.RELEVANCE
    try:
        return SortMode(sort_by)
    except ValueError:
        allowed = ", ".join(mode.value for mode in SortMode)
        raise InvalidRequestError(f"sortBy must be one of: {allowed}") from None


@app.get("/health")
async def health(request: Request) -> dict:
    es = getattr(request.app.state, "es", None)
    status = None
    if es is not None:
        health_info = await asyncio.to_thread(es.cluster.health)
        status = health_info.get("status")
    return {"success": True, "elasticsearch": status, "index": settings.es_index}


@app.get("/api/search", response_model=SearchResponse)
async def search(
    q: str = Query("", description="Search query"),
    page: int = 1,
    limit: int = 20,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    service: SearchService = Depends(get_search_service),
) -> SearchResponse:
    if not q.strip():
        raise InvalidRequestError('Query parameter "q" is required')
    validate_paging(page, limit)
    sort = parse_sort(sort_by)
    started = perf_counter()
    result = await service.search(q, page, limit, sort)
    return SearchResponse(data=result, took_ms=(perf_counter() - started) * 1000)


@app.get("/api/search/category/{category}", response_model=BrowseResponse)
async def by_category(
    category: str,
    page: int = 1,
    limit: int = 20,
    service: SearchService = Depends(get_search_service),
) -> BrowseResponse:
    validate_paging(page, limit)
    return BrowseResponse(data=await service.get_products_by_category(category, page, limit))


@app.get("/api/search/brand/{brand}", response_model=BrowseResponse)
async def by_brand(
    brand: str,
    page: int = 1,
    limit: int = 20,
    service: SearchService = Depends(get_search_service),
) -> BrowseResponse:
    validate_paging(page, limit)
    return BrowseResponse(data=await service.get_products_by_brand(brand, page, limit))


@app.get("/api/search/top-rated", response_model=ProductsResponse)
async def top_rated(limit: int = 20, service: SearchService = Depends(get_search_service)) -> ProductsResponse:
    validate_paging(1, limit)
    products = await service.get_top_rated_products(limit)
    return ProductsResponse(data=ProductsPayload(products=products, count=len(products)))


@app.get("/api/suggest", response_model=SuggestResponse)
async def suggest(
    q: str = Query("", description="Autocomplete prefix"),
    limit: int = 10,
    service: SearchService = Depends(get_search_service),
) -> SuggestResponse:
    if len(q.strip()) < MIN_SUGGEST_PREFIX:
        raise InvalidRequestError(f'Query parameter "q" must be at least {MIN_SUGGEST_PREFIX} characters')
    if limit < 1 or limit > settings.max_suggestions:
        raise InvalidRequestError(f"Limit must be between 1 and {settings.max_suggestions}")
    started = perf_counter()
    suggestions = await service.suggest(q.strip(), limit)
    return SuggestResponse(
        data=SuggestionsPayload(suggestions=suggestions, count=len(suggestions)),
        took_ms=(perf_counter() - started) * 1000,
    )


@app.post("/api/index/load")
async def load_data(ingestion: IngestionCoordinator = Depends(get_ingestion)) -> dict:
    try:
        report = await ingestion.load_from_file(settings.data_path)
    except FileNotFoundError:
        raise InvalidRequestError(f"Data file not found: {settings.data_path}") from None
    return {"success": report.success, "message": "Data loading process completed", "data": report.model_dump()}


@app.post("/api/index/products")
async def insert_products(
    products: List[Product],
    ingestion: IngestionCoordinator = Depends(get_ingestion),
) -> dict:
    result = await ingestion.bulk_insert(products)
    return {
        "success": True,
        "data": {
            "inserted": result.inserted_count,
            "skipped": len(products) - result.inserted_count,
            "total": len(products),
        },
    }


async def _copy_upload(file: UploadFile, target) -> None:
    """Stream an upload into ``target`` in chunks, enforcing the size limit."""
    size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            return
        size += len(chunk)
        if size > settings.max_upload_bytes:
            raise InvalidRequestError(f"File exceeds {settings.max_upload_bytes} bytes")
        target.write(chunk)


@app.post("/api/upload/csv")
async def upload_csv(
    file: UploadFile = File(...),
    ingestion: IngestionCoordinator = Depends(get_ingestion),
) -> dict:
    if not file.filename:
        raise InvalidRequestError("No file provided")
    suffix = Path(file.filename).suffix.lower()
    if suffix not in UPLOAD_EXTENSIONS:
        allowed = ", ".join(sorted(UPLOAD_EXTENSIONS))
        raise InvalidRequestError(f"Unsupported file type; expected one of: {allowed}")

    tmp = tempfile.NamedTemporaryFile("wb", suffix=suffix, delete=False)
    tmp_path = Path(tmp.name)
    try:
        with tmp:
            await _copy_upload(file, tmp)
        products = await asyncio.to_thread(read_products, tmp_path)
        if not products:
            raise InvalidRequestError(f"No valid products found in {file.filename}")
        result = await ingestion.bulk_insert(products)
    finally:
        os.unlink(tmp_path)

    logger.info("Uploaded %s: %s of %s products inserted", file.filename, result.inserted_count, len(products))
    return {
        "success": True,
        "message": f"Processed {file.filename}",
        "data": {
            "inserted": result.inserted_count,
            "skipped": len(products) - result.inserted_count,
            "total": len(products),
        },
    }


@app.get("/api/index/stats")
async def stats(ingestion: IngestionCoordinator = Depends(get_ingestion)) -> dict:
    return {"success": True, "data": (await ingestion.stats()).model_dump()}


@app.delete("/api/index/clear")
async def clear_data(ingestion: IngestionCoordinator = Depends(get_ingestion)) -> dict:
    result = await ingestion.clear_all()
    return {"success": result.success, "message": f"Deleted {result.deleted_count} products"}
