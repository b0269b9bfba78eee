import json
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from sse_starlette.sse import EventSourceResponse

from gridcalc import config
from gridcalc.engine import SpreadsheetEngine
from gridcalc.errors import CorruptState, InvalidAddress, OutOfBounds
from gridcalc.formula import column_index_to_name, format_result
from gridcalc.models import (CellEdit, CellUpdate, CellView, FormulaPreview, FormulaResult, RowSpan,
                             SaveRequest, SelectionAggregate, SelectionQuality, SelectionReplace,
                             SheetSnapshot)
from gridcalc.operations import aggregate_selection, apply_data_quality, find_replace, remove_duplicates
from gridcalc.storage import DatabaseManager, SheetRepository

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.load_env()
    db = DatabaseManager(config.db_path())
    db.initialize_schema()
    app.state.repo = SheetRepository(db)
    app.state.engine = SpreadsheetEngine(config.default_rows(), config.default_cols())
    logger.info("Sheet ready (%dx%d), storage at %s",
                app.state.engine.grid.n_rows, app.state.engine.grid.n_cols, db.db_path)
    yield


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _engine(request: Request) -> SpreadsheetEngine:
    return request.app.state.engine


def _repo(request: Request) -> SheetRepository:
    return request.app.state.repo


async def recalc_events(engine: SpreadsheetEngine) -> AsyncGenerator[dict, None]:
    """SSE payloads for one recalculation pass, then [DONE]."""
    for update in engine.recalc_all():
        yield {"data": json.dumps({"type": "cell", **update.model_dump()})}
    yield {"data": "[DONE]"}


# ── Sheet ────────────────────────────────────────────────────────

@app.get("/sheet", response_model=SheetSnapshot)
async def get_sheet(request: Request):
    engine = _engine(request)
    grid = engine.grid
    return SheetSnapshot(
        n_rows=grid.n_rows,
        n_cols=grid.n_cols,
        headers=[column_index_to_name(c) for c in range(grid.n_cols)],
        rows=grid.rows(),
        state=engine.state,
    )


@app.get("/sheet/cell", response_model=CellView)
async def get_cell(request: Request, row: int, col: int):
    engine = _engine(request)
    try:
        return CellView(row=row, col=col, text=engine.get_cell_text(row, col),
                        display=engine.get_display_text(row, col))
    except OutOfBounds as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put("/sheet/cell", response_model=List[CellUpdate])
async def update_cell(request: Request, req: CellEdit):
    try:
        return _engine(request).set_cell_text(req.row, req.col, req.text)
    except OutOfBounds as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/sheet/rows", response_model=List[CellUpdate])
async def add_row(request: Request):
    return _engine(request).add_row()


@app.delete("/sheet/rows")
async def delete_row(request: Request):
    engine = _engine(request)
    return {"removed": engine.remove_row(), "n_rows": engine.grid.n_rows}


@app.post("/sheet/columns", response_model=List[CellUpdate])
async def add_column(request: Request):
    return _engine(request).add_column()


@app.delete("/sheet/columns")
async def delete_column(request: Request):
    engine = _engine(request)
    return {"removed": engine.remove_column(), "n_cols": engine.grid.n_cols}


# ── Formulas ─────────────────────────────────────────────────────

@app.post("/sheet/recalc", response_model=List[CellUpdate])
async def recalc(request: Request):
    return _engine(request).recalc_all()


@app.get("/sheet/recalc/stream")
async def recalc_stream(request: Request):
    """SSE endpoint: one event per recalculated formula cell."""
    return EventSourceResponse(recalc_events(_engine(request)))


@app.post("/sheet/evaluate", response_model=FormulaResult)
async def evaluate_formula(request: Request, req: FormulaPreview):
    return FormulaResult(formula=req.formula, result=_engine(request).evaluate_formula(req.formula))


# ── Persistence ──────────────────────────────────────────────────

@app.post("/sheet/save")
async def save_sheet(request: Request, req: SaveRequest):
    key = req.key or config.storage_key()
    engine = _engine(request)
    _repo(request).save(key, engine)
    return {"key": key, "n_rows": engine.grid.n_rows, "n_cols": engine.grid.n_cols}


@app.post("/sheet/load", response_model=SheetSnapshot)
async def load_sheet(request: Request, req: SaveRequest):
    key = req.key or config.storage_key()
    try:
        found = _repo(request).load(key, _engine(request))
    except CorruptState as e:
        logger.warning("Refused to load sheet %r: %s", key, e)
        raise HTTPException(status_code=422, detail=f"Invalid data: {e}")
    if not found:
        raise HTTPException(status_code=404, detail="No saved spreadsheet found")
    return await get_sheet(request)


@app.get("/sheet/saves", response_model=List[str])
async def list_saves(request: Request):
    return _repo(request).list_keys()


@app.delete("/sheet/saves/{key}")
async def delete_save(request: Request, key: str):
    if not _repo(request).delete(key):
        raise HTTPException(status_code=404, detail="No saved spreadsheet found")
    return {"deleted": key}


# ── Selection operations ─────────────────────────────────────────

@app.post("/sheet/selection/aggregate")
async def selection_aggregate(request: Request, req: SelectionAggregate):
    try:
        result = aggregate_selection(_engine(request), req.selection, req.func)
    except InvalidAddress as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"func": req.func.upper(), "result": format_result(result)}


@app.post("/sheet/selection/quality", response_model=List[CellUpdate])
async def selection_quality(request: Request, req: SelectionQuality):
    try:
        return apply_data_quality(_engine(request), req.selection, req.kind)
    except (InvalidAddress, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/sheet/selection/replace", response_model=List[CellUpdate])
async def selection_replace(request: Request, req: SelectionReplace):
    try:
        return find_replace(_engine(request), req.selection, req.find, req.replace)
    except (InvalidAddress, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/sheet/rows/dedupe", response_model=List[CellUpdate])
async def dedupe_rows(request: Request, req: RowSpan):
    return remove_duplicates(_engine(request), req.row_start, req.row_end)


def main():
    import uvicorn
    config.load_env()
    config.configure_logging()
    host = os.getenv("GRIDCALC_HOST", "127.0.0.1")
    port = int(os.getenv("GRIDCALC_PORT", "8000"))
    uvicorn.run(app, host=host, port=port, timeout_keep_alive=5)


if __name__ == "__main__":
    main()
