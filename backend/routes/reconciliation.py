"""Claim reconciliation routes.

Provides endpoints for:
- Staging claims and remittance advice per provider and filing period
- Running reconciliation and manually linking orphan remittance lines
- Browsing runs, claims, periods and orphans
- Purging claims and runs
"""

import logging
import os
import threading
from typing import Any

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Path,
    Query,
    Request,
    UploadFile,
)

from config import (
    DB_PATH,
    DEFAULT_CURRENCY,
    MAX_UPLOAD_BYTES,
    RECON_CONFIG_PATH,
    UPLOAD_RATE_LIMIT,
)
from limiter import limiter
from parsers import ParsedRows, load_claim_rows, load_remittance_rows
from reconciliation import (
    InvalidLinkError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
    ReconciliationService,
    load_matching_config,
)
from routes.audit import AuditAction, record_event
from schemas import (
    ClaimsUploadRequest,
    ManualLinkRequest,
    MatchResultResponse,
    ReconciliationSummaryResponse,
    RemittanceUploadRequest,
    RunRequest,
    UploadResponse,
)
from storage import ReconciliationStore
from utils import sanitize_filename, sanitize_label

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/claim-reconciliation", tags=["claim-reconciliation"])

ALLOWED_UPLOAD_EXTENSIONS = (".csv", ".txt")

_services: dict[str, ReconciliationService] = {}
_services_lock = threading.Lock()


def get_service() -> ReconciliationService:
    """One service per database path, created on first use."""
    db_path = os.environ.get("DB_PATH", DB_PATH)
    with _services_lock:
        service = _services.get(db_path)
        if service is None:
            service = ReconciliationService(
                ReconciliationStore(db_path),
                config=load_matching_config(
                    os.environ.get("RECON_CONFIG_PATH", RECON_CONFIG_PATH)
                ),
                default_currency=DEFAULT_CURRENCY,
            )
            _services[db_path] = service
        return service


def _to_http_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, PreconditionError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (InvalidTransitionError, InvalidLinkError)):
        return HTTPException(status_code=409, detail=str(e))
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {str(e)[:200]}")


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _actor(user_id: str | None) -> str | None:
    if not user_id:
        return None
    return sanitize_label(user_id) or None


def _read_upload(file: UploadFile) -> str:
    filename = sanitize_filename(file.filename)
    if not filename.lower().endswith(ALLOWED_UPLOAD_EXTENSIONS):
        raise HTTPException(
            status_code=400, detail="Only CSV uploads (.csv, .txt) are supported"
        )
    content = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"Upload exceeds the {MAX_UPLOAD_BYTES} byte limit",
        )
    return content.decode("utf-8-sig", errors="replace")


def _upload_response(
    result: dict[str, Any], parsed: ParsedRows | None = None
) -> UploadResponse:
    return UploadResponse(
        provider_name=result["provider_name"],
        period_year=result["period_year"],
        period_month=result["period_month"],
        inserted=result["inserted"],
        replaced=result["replaced"],
        already_linked=result.get("already_linked", 0),
        skipped_rows=[row.to_dict() for row in parsed.skipped] if parsed else [],
    )


# ----------------------------------------------------------------------
# Uploads
# ----------------------------------------------------------------------


@router.post("/claims", response_model=UploadResponse)
@limiter.limit(UPLOAD_RATE_LIMIT)
def upload_claims(
    request: Request,
    upload: ClaimsUploadRequest,
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
):
    """Stage a provider's claims for one filing period (JSON rows)."""
    try:
        result = service.upsert_claims_for_period(
            upload.provider_name,
            upload.period_year,
            upload.period_month,
            [row.to_row() for row in upload.claims],
        )
    except Exception as e:
        raise _to_http_error(e, "upload claims") from e

    record_event(
        AuditAction.CLAIMS_UPLOAD,
        actor=_actor(x_user_id),
        provider_name=upload.provider_name,
        resource_type="provider_period",
        resource_id=f"{upload.provider_name}/{upload.period_year}-{upload.period_month:02d}",
        details={"inserted": result["inserted"], "replaced": result["replaced"]},
        ip_address=_client_ip(request),
    )
    return _upload_response(result)


@router.post("/claims/upload", response_model=UploadResponse)
@limiter.limit(UPLOAD_RATE_LIMIT)
def upload_claims_file(
    request: Request,
    file: UploadFile = File(...),
    provider_name: str = Form(..., min_length=1, max_length=128),
    period_year: int = Form(..., ge=1900, le=2100),
    period_month: int = Form(..., ge=1, le=12),
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
):
    """Stage a provider's claims from a CSV export.

    Rows that cannot be read are reported in ``skipped_rows`` with their
    line number; the rest are stored.
    """
    text = _read_upload(file)
    try:
        parsed = load_claim_rows(text)
        result = service.upsert_claims_for_period(
            provider_name, period_year, period_month, parsed.rows
        )
    except Exception as e:
        raise _to_http_error(e, "upload claims") from e

    record_event(
        AuditAction.CLAIMS_UPLOAD,
        actor=_actor(x_user_id),
        provider_name=result["provider_name"],
        resource_type="provider_period",
        resource_id=f"{result['provider_name']}/{period_year}-{period_month:02d}",
        details={
            "filename": sanitize_filename(file.filename),
            "inserted": result["inserted"],
            "replaced": result["replaced"],
            "skipped": len(parsed.skipped),
        },
        ip_address=_client_ip(request),
    )
    return _upload_response(result, parsed)


@router.post("/remittances", response_model=UploadResponse)
@limiter.limit(UPLOAD_RATE_LIMIT)
def upload_remittances(
    request: Request,
    upload: RemittanceUploadRequest,
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
):
    """Stage a provider's remittance advice for one period (JSON rows)."""
    try:
        result = service.upsert_remittance_for_period(
            upload.provider_name,
            upload.period_year,
            upload.period_month,
            [row.to_row() for row in upload.remittances],
        )
    except Exception as e:
        raise _to_http_error(e, "upload remittance") from e

    record_event(
        AuditAction.REMITTANCE_UPLOAD,
        actor=_actor(x_user_id),
        provider_name=upload.provider_name,
        resource_type="provider_period",
        resource_id=f"{upload.provider_name}/{upload.period_year}-{upload.period_month:02d}",
        details={"inserted": result["inserted"], "replaced": result["replaced"]},
        ip_address=_client_ip(request),
    )
    return _upload_response(result)


@router.post("/remittances/upload", response_model=UploadResponse)
@limiter.limit(UPLOAD_RATE_LIMIT)
def upload_remittances_file(
    request: Request,
    file: UploadFile = File(...),
    provider_name: str = Form(..., min_length=1, max_length=128),
    period_year: int = Form(..., ge=1900, le=2100),
    period_month: int = Form(..., ge=1, le=12),
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
):
    """Stage a provider's remittance advice from a CSV export."""
    text = _read_upload(file)
    try:
        parsed = load_remittance_rows(text)
        result = service.upsert_remittance_for_period(
            provider_name, period_year, period_month, parsed.rows
        )
    except Exception as e:
        raise _to_http_error(e, "upload remittance") from e

    record_event(
        AuditAction.REMITTANCE_UPLOAD,
        actor=_actor(x_user_id),
        provider_name=result["provider_name"],
        resource_type="provider_period",
        resource_id=f"{result['provider_name']}/{period_year}-{period_month:02d}",
        details={
            "filename": sanitize_filename(file.filename),
            "inserted": result["inserted"],
            "replaced": result["replaced"],
            "skipped": len(parsed.skipped),
        },
        ip_address=_client_ip(request),
    )
    return _upload_response(result, parsed)


# ----------------------------------------------------------------------
# Runs and manual links
# ----------------------------------------------------------------------


@router.post("/run")
@limiter.limit(UPLOAD_RATE_LIMIT)
def run_reconciliation(
    request: Request,
    run_request: RunRequest,
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """Match the provider's outstanding claims against a remittance period.

    Returns the run summary and the per-claim outcomes recorded for it.
    """
    actor = _actor(x_user_id)
    try:
        summary = service.run_claim_reconciliation(
            run_request.provider_name,
            run_request.period_year,
            run_request.period_month,
            created_by=actor,
        )
        results = service.get_run_claims(summary.run_id)
    except Exception as e:
        raise _to_http_error(e, "run reconciliation") from e

    record_event(
        AuditAction.RUN_EXECUTE,
        actor=actor,
        provider_name=run_request.provider_name,
        resource_type="reconciliation_run",
        resource_id=summary.run_id,
        details=summary.to_dict(),
        ip_address=_client_ip(request),
    )
    return {
        "summary": ReconciliationSummaryResponse(**summary.to_dict()),
        "results": results,
    }


@router.post("/link", response_model=MatchResultResponse)
def link_remittance(
    request: Request,
    link: ManualLinkRequest,
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
):
    """Link an orphan remittance line to an outstanding claim by hand."""
    actor = _actor(x_user_id)
    try:
        result = service.link_remittance_manually(
            link.claim_id, link.remittance_id, actor=actor
        )
    except Exception as e:
        raise _to_http_error(e, "link remittance") from e

    record_event(
        AuditAction.MANUAL_LINK,
        actor=actor,
        resource_type="claim",
        resource_id=link.claim_id,
        details={"remittance_id": link.remittance_id, "status": result.status.value},
        ip_address=_client_ip(request),
    )
    return MatchResultResponse(**result.to_dict())


@router.get("/runs")
def list_runs(
    provider_name: str | None = Query(default=None, description="Filter by provider"),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """List reconciliation runs, newest first."""
    try:
        runs = service.list_runs(provider_name)
    except Exception as e:
        raise _to_http_error(e, "list runs") from e
    return {"runs": runs, "total": len(runs)}


@router.get("/runs/{run_id}")
def get_run(
    run_id: int = Path(..., gt=0),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    try:
        return service.get_run(run_id)
    except Exception as e:
        raise _to_http_error(e, "get run") from e


@router.get("/runs/{run_id}/claims")
def get_run_claims(
    run_id: int = Path(..., gt=0),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """Per-claim history recorded by a run."""
    try:
        claims = service.get_run_claims(run_id)
    except Exception as e:
        raise _to_http_error(e, "get run claims") from e
    return {"run_id": run_id, "claims": claims, "total": len(claims)}


@router.delete("/runs/{run_id}")
def delete_run(
    request: Request,
    run_id: int = Path(..., gt=0),
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """Delete a run and its history. Claims and remittance lines keep their state."""
    try:
        service.delete_run(run_id)
    except Exception as e:
        raise _to_http_error(e, "delete run") from e

    record_event(
        AuditAction.RUN_DELETE,
        actor=_actor(x_user_id),
        resource_type="reconciliation_run",
        resource_id=run_id,
        ip_address=_client_ip(request),
    )
    return {"deleted": True, "run_id": run_id}


# ----------------------------------------------------------------------
# Claims, periods and orphans
# ----------------------------------------------------------------------


@router.get("/claims")
def list_claims(
    provider_name: str | None = Query(default=None),
    status: str | None = Query(default=None, description="Filter by claim status"),
    period_year: int | None = Query(default=None, ge=1900, le=2100),
    period_month: int | None = Query(default=None, ge=1, le=12),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """List claims with filtering and pagination."""
    try:
        return service.list_claims(
            provider_name=provider_name,
            status=status,
            period_year=period_year,
            period_month=period_month,
            page=page,
            limit=limit,
        )
    except Exception as e:
        raise _to_http_error(e, "list claims") from e


@router.get("/claims/issues")
def get_issue_claims(
    provider_name: str | None = Query(default=None),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """Claims paid short, not paid, or flagged for manual review."""
    try:
        claims = service.get_issue_claims(provider_name)
    except Exception as e:
        raise _to_http_error(e, "list issue claims") from e
    return {"claims": claims, "total": len(claims)}


@router.delete("/claims/{claim_id}")
def delete_claim(
    request: Request,
    claim_id: int = Path(..., gt=0),
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """Delete one claim. A remittance line it had settled becomes an orphan."""
    try:
        service.delete_claim(claim_id)
    except Exception as e:
        raise _to_http_error(e, "delete claim") from e

    record_event(
        AuditAction.CLAIM_DELETE,
        actor=_actor(x_user_id),
        resource_type="claim",
        resource_id=claim_id,
        ip_address=_client_ip(request),
    )
    return {"deleted": True, "claim_id": claim_id}


@router.get("/periods")
def get_periods_summary(
    provider_name: str | None = Query(default=None),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """Claim counts and billed/paid totals per provider and period."""
    try:
        periods = service.get_periods_summary(provider_name)
    except Exception as e:
        raise _to_http_error(e, "summarize periods") from e
    return {"periods": periods}


@router.get("/periods/{period_year}/{period_month}/claims")
def get_period_claims(
    period_year: int = Path(..., ge=1900, le=2100),
    period_month: int = Path(..., ge=1, le=12),
    provider_name: str = Query(..., min_length=1),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    try:
        claims = service.get_claims_for_period(provider_name, period_year, period_month)
    except Exception as e:
        raise _to_http_error(e, "get period claims") from e
    return {"claims": claims, "total": len(claims)}


@router.get("/periods/{period_year}/{period_month}/remittances")
def get_period_remittances(
    period_year: int = Path(..., ge=1900, le=2100),
    period_month: int = Path(..., ge=1, le=12),
    provider_name: str = Query(..., min_length=1),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    try:
        lines = service.get_remittance_for_period(
            provider_name, period_year, period_month
        )
    except Exception as e:
        raise _to_http_error(e, "get period remittances") from e
    return {"remittances": lines, "total": len(lines)}


@router.delete("/periods/{period_year}/{period_month}/claims")
def delete_period_claims(
    request: Request,
    period_year: int = Path(..., ge=1900, le=2100),
    period_month: int = Path(..., ge=1, le=12),
    provider_name: str = Query(..., min_length=1),
    x_user_id: str | None = Header(default=None),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """Delete every claim of a provider+period, including run-processed ones."""
    try:
        deleted = service.delete_claims_for_period(
            provider_name, period_year, period_month
        )
    except Exception as e:
        raise _to_http_error(e, "delete period claims") from e

    record_event(
        AuditAction.CLAIMS_PERIOD_DELETE,
        actor=_actor(x_user_id),
        provider_name=provider_name,
        resource_type="provider_period",
        resource_id=f"{provider_name}/{period_year}-{period_month:02d}",
        details={"deleted": deleted},
        ip_address=_client_ip(request),
    )
    return {"deleted": deleted}


@router.get("/remittances/orphans")
def list_orphan_remittances(
    provider_name: str | None = Query(default=None),
    service: ReconciliationService = Depends(get_service),
) -> dict[str, Any]:
    """Remittance lines that no claim has matched."""
    try:
        lines = service.list_orphan_remittances(provider_name)
    except Exception as e:
        raise _to_http_error(e, "list orphan remittances") from e
    return {"remittances": lines, "total": len(lines)}
