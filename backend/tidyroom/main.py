# backend/tidyroom/main.py
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from .config import settings
from .errors import TidyroomError, ValidationError
from .logging_config import configure_logging
from .models import ColumnStats, DatasetMetadata, DatasetPage
from .operations import ExportFormat, ImportFormat, parse_operation
from .services.history import HistoryEntryInfo
from .services.store import DatasetStore

logger = logging.getLogger(__name__)


# --- Request / response bodies ---
class ImportRequest(BaseModel):
    file_path: str
    format: Optional[ImportFormat] = None
    sheet_name: Optional[str] = None


class ExportRequest(BaseModel):
    output_path: str
    format: ExportFormat = "csv"


class HistoryResponse(BaseModel):
    entries: List[HistoryEntryInfo]
    current_index: Optional[int]
    can_undo: bool
    can_redo: bool


def get_store(request: Request) -> DatasetStore:
    return request.app.state.store


async def tidyroom_error_handler(request: Request, exc: TidyroomError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(store: Optional[DatasetStore] = None) -> FastAPI:
    app = FastAPI(title=f"{settings.APP_NAME} API", version=settings.APP_VERSION)
    app.state.store = store if store is not None else DatasetStore()

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(TidyroomError, tidyroom_error_handler)

    @app.get("/")
    async def read_root():
        return {"message": f"{settings.APP_NAME} API is running", "version": settings.APP_VERSION}

    # --- Dataset lifecycle ---
    @app.post("/import", response_model=DatasetMetadata)
    async def import_file(body: ImportRequest, store: DatasetStore = Depends(get_store)):
        """Loads a file from disk and starts a fresh history with it."""
        return await run_in_threadpool(store.import_file, body.file_path, body.format, body.sheet_name)

    @app.get("/sheets")
    async def list_sheets(file_path: str, store: DatasetStore = Depends(get_store)):
        sheets = await run_in_threadpool(store.list_sheets, file_path)
        return {"sheets": sheets}

    @app.get("/dataset", response_model=Optional[DatasetMetadata])
    async def get_dataset(store: DatasetStore = Depends(get_store)):
        return await run_in_threadpool(store.current_metadata)

    @app.delete("/dataset")
    async def clear_dataset(store: DatasetStore = Depends(get_store)):
        await run_in_threadpool(store.clear)
        return {"message": "Dataset cleared"}

    # --- Reads ---
    @app.get("/data", response_model=DatasetPage)
    async def get_data(offset: int = 0, limit: Optional[int] = None,
                       store: DatasetStore = Depends(get_store)):
        return await run_in_threadpool(store.get_page, offset, limit)

    @app.get("/column-stats/{column_name}", response_model=ColumnStats)
    async def get_column_stats(column_name: str, store: DatasetStore = Depends(get_store)):
        return await run_in_threadpool(store.column_stats, column_name)

    # --- Transformations ---
    @app.post("/apply-operation", response_model=DatasetMetadata)
    async def apply_operation(payload: Dict[str, Any] = Body(...),
                              store: DatasetStore = Depends(get_store)):
        """Applies one typed operation, e.g. {"type": "Sort", "column": "age"}."""
        try:
            op = parse_operation(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid operation: {e}")
        return await run_in_threadpool(store.apply, op)

    # --- History ---
    @app.post("/undo", response_model=DatasetMetadata)
    async def undo(store: DatasetStore = Depends(get_store)):
        return await run_in_threadpool(store.undo)

    @app.post("/redo", response_model=DatasetMetadata)
    async def redo(store: DatasetStore = Depends(get_store)):
        return await run_in_threadpool(store.redo)

    @app.post("/reset", response_model=DatasetMetadata)
    async def reset(store: DatasetStore = Depends(get_store)):
        """Returns to the oldest entry and discards the rest of the history."""
        return await run_in_threadpool(store.reset_to_initial)

    @app.post("/jump/{entry_id}", response_model=DatasetMetadata)
    async def jump(entry_id: str, store: DatasetStore = Depends(get_store)):
        return await run_in_threadpool(store.jump_to, entry_id)

    @app.get("/history", response_model=HistoryResponse)
    async def get_history(store: DatasetStore = Depends(get_store)):
        snapshot = await run_in_threadpool(store.history_snapshot)
        return HistoryResponse(**snapshot)

    # --- Export ---
    @app.post("/export")
    async def export(body: ExportRequest, store: DatasetStore = Depends(get_store)):
        path = await run_in_threadpool(store.export, body.output_path, body.format)
        return {"path": path}

    return app


app = create_app()


def run() -> None:
    import uvicorn
    configure_logging()
    uvicorn.run("tidyroom.main:app", host="127.0.0.1", port=8000)
