"""FastAPI application entrypoint for LedgerSync."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ledgersync_core import (
    AlreadyUndone,
    BatchNotFound,
    BatchTooLarge,
    CommitFailure,
    CurrencyRateInvalid,
    CurrencyRateUnavailable,
    ImportService,
    IncompleteReview,
    InvalidDuplicateAction,
    LedgerSyncError,
    NothingToImport,
    ParseError,
    UndoConflict,
    UndoExpired,
    WalletNotFound,
    build_service,
    configure_logging,
    get_logger,
    load_settings,
)
from ledgersync_schemas import (
    CandidateTransaction,
    Classification,
    ClassifyRequest,
    ConvertCurrencyRequest,
    ConvertCurrencyResponse,
    DetectDuplicatesRequest,
    DuplicateMatch,
    ExecuteImportRequest,
    ImportHistoryPage,
    ImportSummary,
    NormalizeRequest,
    UndoResult,
    Wallet,
    WalletCreateRequest,
)

logger = get_logger(__name__)

router = APIRouter(tags=["engine"])

_STATUS_BY_ERROR: dict[type[LedgerSyncError], int] = {
    IncompleteReview: 409,
    InvalidDuplicateAction: 409,
    AlreadyUndone: 409,
    UndoConflict: 409,
    UndoExpired: 410,
    WalletNotFound: 404,
    BatchNotFound: 404,
    CurrencyRateInvalid: 422,
    CurrencyRateUnavailable: 422,
    NothingToImport: 422,
    BatchTooLarge: 422,
    ParseError: 422,
    CommitFailure: 500,
}


def _status_for(exc: LedgerSyncError) -> int:
    for error_type, status in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status
    return 500


def get_service(request: Request) -> ImportService:
    return request.app.state.service


@router.post("/wallets", response_model=Wallet, status_code=201)
def create_wallet(
    payload: WalletCreateRequest, service: ImportService = Depends(get_service)
) -> Wallet:
    return service.create_wallet(payload.name, payload.currency, payload.balance)


@router.post("/imports/normalize", response_model=list[CandidateTransaction])
def normalize_rows(
    payload: NormalizeRequest, service: ImportService = Depends(get_service)
) -> list[CandidateTransaction]:
    """Turn raw statement rows into validated candidates."""
    try:
        return service.normalize(payload.rows, payload.hint)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.post("/imports/duplicates", response_model=list[DuplicateMatch])
def detect_duplicates(
    payload: DetectDuplicatesRequest, service: ImportService = Depends(get_service)
) -> list[DuplicateMatch]:
    return service.detect_duplicates(payload.candidates, payload.wallet_id)


@router.post("/imports/convert", response_model=ConvertCurrencyResponse)
def convert_currency(
    payload: ConvertCurrencyRequest, service: ImportService = Depends(get_service)
) -> ConvertCurrencyResponse:
    candidates, conversions = service.convert_currency(
        payload.candidates, payload.manual_rates, payload.wallet_id
    )
    return ConvertCurrencyResponse(candidates=candidates, conversions=conversions)


@router.post("/imports/classify", response_model=Classification)
def classify_candidates(
    payload: ClassifyRequest, service: ImportService = Depends(get_service)
) -> Classification:
    return service.classify(
        payload.candidates,
        payload.duplicate_matches,
        payload.strategy,
        payload.resolved_actions,
    )


@router.post("/imports/execute", response_model=ImportSummary)
def execute_import(
    payload: ExecuteImportRequest, service: ImportService = Depends(get_service)
) -> ImportSummary:
    """Commit the reviewed rows to the wallet."""
    try:
        return service.execute_import(
            payload.wallet_id,
            payload.rows,
            payload.strategy,
            payload.duplicate_actions,
            payload.excluded_row_numbers,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.post("/imports/{batch_id}/undo", response_model=UndoResult)
def undo_import(batch_id: str, service: ImportService = Depends(get_service)) -> UndoResult:
    return service.undo_import(batch_id)


@router.get("/wallets/{wallet_id}/imports", response_model=ImportHistoryPage)
def import_history(
    wallet_id: int,
    page: int = 1,
    page_size: int = 20,
    service: ImportService = Depends(get_service),
) -> ImportHistoryPage:
    try:
        return service.import_history(wallet_id, page=page, page_size=page_size)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def create_app(service: Optional[ImportService] = None) -> FastAPI:
    """Build and configure the FastAPI application."""
    configure_logging()
    app = FastAPI(title="LedgerSync Engine", version="0.1.0")
    app.state.service = service or build_service(load_settings())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerSyncError)
    async def ledger_error_handler(_request: Request, exc: LedgerSyncError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("Request failed: %s", exc)
        body: dict[str, object] = {"detail": str(exc), "error": type(exc).__name__}
        if isinstance(exc, IncompleteReview):
            body["expected"] = exc.expected
            body["received"] = exc.received
        elif isinstance(exc, UndoConflict):
            body["blocking_batch_id"] = exc.blocking_batch_id
        return JSONResponse(status_code=status, content=body)

    @app.get("/health", tags=["system"])  # pragma: no cover - trivial
    def healthcheck() -> dict[str, bool]:
        return {"ok": True}

    app.include_router(router)

    return app


def run() -> None:  # pragma: no cover - manual entrypoint
    """Run the development server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "ledgersync_engine.main:create_app",
        factory=True,
        host="127.0.0.1",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    run()
