import logging
import time as _time
import uuid
from datetime import datetime
from io import BytesIO
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import StreamingResponse

from .config import settings
from .invoice_calculator import format_currency
from .lifecycle import InvalidTransitionError, InvoiceNotFoundError
from .models import (
    ApiResponse, ChatRequest, EstimateRequest, InvoiceSubmitRequest, MapAuditData, QCStatus,
    QCUpdateRequest, TranscriptionData, UnitRates, UserRole
)
from .reports import BillingReportGenerator
from .services import (
    AiService, DashboardService, InvoiceService, NotificationService, PaymentSettlementService,
    RateService
)
from .services.ai_service import TRANSCRIPTION_ERROR_TEXT, placeholder_audit, placeholder_map_analysis
from .store import FieldOpsStore, build_store
from .utils import is_kml, to_base64

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.DESCRIPTION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ADMIN_ROLES = (UserRole.OWNER, UserRole.SUPERVISOR)
OWNER_ONLY = (UserRole.OWNER,)

# One session store and notification feed per process
_store: Optional[FieldOpsStore] = None
_notifications: Optional[NotificationService] = None
_ai_service: Optional[AiService] = None


def get_store() -> FieldOpsStore:
    global _store
    if _store is None:
        _store = build_store()
    return _store


def get_notifications() -> NotificationService:
    global _notifications
    if _notifications is None:
        _notifications = NotificationService()
    return _notifications


def get_ai_service() -> AiService:
    global _ai_service
    if _ai_service is None:
        _ai_service = AiService()
    return _ai_service


class CurrentUser:
    def __init__(self, name: Optional[str], role: UserRole):
        self.name = name
        self.role = role


def get_current_user(
        x_user_name: Optional[str] = Header(None),
        x_user_role: str = Header(UserRole.LINEMAN.value)
) -> CurrentUser:
    try:
        role = UserRole(x_user_role.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown role: {x_user_role}")
    return CurrentUser(x_user_name, role)


def require_roles(*roles: UserRole):
    def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role {user.role.value} may not perform this action"
            )
        return user
    return checker


def get_invoice_service(store: FieldOpsStore = Depends(get_store)):
    return InvoiceService(store)


def get_settlement_service(store: FieldOpsStore = Depends(get_store)):
    return PaymentSettlementService(store)


def get_rate_service(store: FieldOpsStore = Depends(get_store)):
    return RateService(store)


def get_dashboard_service(store: FieldOpsStore = Depends(get_store)):
    return DashboardService(store)


def _raise_http(tag: str, request_id: str, start_time: float, e: Exception):
    """Translate a service error into an HTTPException, logging it with timing."""
    elapsed = round(_time.time() - start_time, 2)
    if isinstance(e, InvoiceNotFoundError):
        logger.warning(f"[{tag}] Not found | request ID: {request_id} | elapsed: {elapsed}s | {e}")
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidTransitionError):
        logger.warning(f"[{tag}] Refused | request ID: {request_id} | elapsed: {elapsed}s | {e}")
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValueError):
        logger.warning(f"[{tag}] Bad request | request ID: {request_id} | elapsed: {elapsed}s | {e}")
        raise HTTPException(status_code=400, detail=str(e))
    logger.error(f"[{tag}] Failed | request ID: {request_id} | elapsed: {elapsed}s | error: {str(e)}", exc_info=True)
    raise HTTPException(status_code=500, detail=str(e))


@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT, "time": datetime.now().isoformat()}


# ================= Invoices =================
@app.post("/invoices", response_model=ApiResponse, tags=["Invoices"])
async def submit_invoice(
        request: InvoiceSubmitRequest,
        user: CurrentUser = Depends(get_current_user),
        service: InvoiceService = Depends(get_invoice_service),
        notifications: NotificationService = Depends(get_notifications)
):
    """Crew submits daily field work; priced at the current unit rates."""
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[Submit] Start | request ID: {request_id}")
    logger.info(f"[Submit] Params: route={request.route_id}, footage={request.total_footage}, crew={user.name}")

    try:
        invoice = service.submit(request, crew_name=user.name)
    except Exception as e:
        _raise_http("Submit", request_id, start_time, e)

    notifications.add(
        "Submission sent",
        f"Daily report {invoice.id} ({format_currency(invoice.total_amount)}) sent for supervision.",
        "success"
    )
    elapsed = round(_time.time() - start_time, 2)
    logger.info(f"[Submit] Done | request ID: {request_id} | elapsed: {elapsed}s | invoice: {invoice.id}")
    return {
        "success": True,
        "message": f"Invoice {invoice.id} submitted",
        "data": invoice.model_dump(mode="json"),
        "request_id": request_id
    }


@app.post("/invoices/estimate", response_model=ApiResponse, tags=["Invoices"])
async def estimate_invoice(
        request: EstimateRequest,
        service: InvoiceService = Depends(get_invoice_service)
):
    """Live earnings estimate for the submission form; nothing is stored."""
    return {
        "success": True,
        "message": "Estimate calculated",
        "data": service.estimate(request),
        "request_id": str(uuid.uuid4())
    }


@app.get("/invoices", response_model=ApiResponse, tags=["Invoices"])
async def list_invoices(
        q: Optional[str] = Query(None, description="Filter on crew, route or invoice ID"),
        service: InvoiceService = Depends(get_invoice_service)
):
    invoices = service.list_invoices(q)
    return {
        "success": True,
        "message": f"{len(invoices)} invoices",
        "data": [i.model_dump(mode="json") for i in invoices],
        "request_id": str(uuid.uuid4())
    }


@app.get("/invoices/{invoice_id}", response_model=ApiResponse, tags=["Invoices"])
async def get_invoice(invoice_id: str, service: InvoiceService = Depends(get_invoice_service)):
    request_id = str(uuid.uuid4())
    try:
        invoice = service.get(invoice_id)
    except Exception as e:
        _raise_http("Invoice", request_id, _time.time(), e)
    return {
        "success": True,
        "message": "OK",
        "data": invoice.model_dump(mode="json"),
        "request_id": request_id
    }


@app.post("/invoices/{invoice_id}/qc", response_model=ApiResponse, tags=["Invoices"])
async def record_qc(
        invoice_id: str,
        request: QCUpdateRequest,
        user: CurrentUser = Depends(require_roles(*ADMIN_ROLES)),
        service: InvoiceService = Depends(get_invoice_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[QC] Start | request ID: {request_id} | invoice: {invoice_id} | outcome: {request.qc_status} | by: {user.name}")
    try:
        invoice = service.record_qc(invoice_id, QCStatus(request.qc_status))
    except Exception as e:
        _raise_http("QC", request_id, start_time, e)
    return {
        "success": True,
        "message": f"QC {invoice.qc_status.value} recorded for {invoice.id}",
        "data": invoice.model_dump(mode="json"),
        "request_id": request_id
    }


@app.post("/invoices/{invoice_id}/approve", response_model=ApiResponse, tags=["Invoices"])
async def approve_invoice(
        invoice_id: str,
        user: CurrentUser = Depends(require_roles(*ADMIN_ROLES)),
        service: InvoiceService = Depends(get_invoice_service)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[Approve] Start | request ID: {request_id} | invoice: {invoice_id} | by: {user.name}")
    try:
        invoice = service.approve(invoice_id)
    except Exception as e:
        _raise_http("Approve", request_id, start_time, e)
    return {
        "success": True,
        "message": f"Invoice {invoice.id} approved",
        "data": invoice.model_dump(mode="json"),
        "request_id": request_id
    }


@app.get("/invoices/{invoice_id}/settlement-preview", response_model=ApiResponse, tags=["Settlement"])
async def preview_settlement(
        invoice_id: str,
        user: CurrentUser = Depends(require_roles(*ADMIN_ROLES)),
        service: PaymentSettlementService = Depends(get_settlement_service)
):
    request_id = str(uuid.uuid4())
    try:
        preview = service.preview(invoice_id)
    except Exception as e:
        _raise_http("Settlement preview", request_id, _time.time(), e)
    return {
        "success": True,
        "message": "Settlement preview",
        "data": preview.model_dump(mode="json"),
        "request_id": request_id
    }


@app.post("/invoices/{invoice_id}/pay", response_model=ApiResponse, tags=["Settlement"])
async def pay_invoice(
        invoice_id: str,
        user: CurrentUser = Depends(require_roles(*OWNER_ONLY)),
        service: PaymentSettlementService = Depends(get_settlement_service),
        notifications: NotificationService = Depends(get_notifications)
):
    """Settle an APPROVED invoice: deduct the transaction fee and record the payout."""
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[Payment] Start | request ID: {request_id} | invoice: {invoice_id} | by: {user.name}")
    try:
        transaction = service.settle(invoice_id)
    except Exception as e:
        _raise_http("Payment", request_id, start_time, e)

    notifications.add(
        "Payment confirmed",
        f"Transfer completed: {transaction.description}, net {format_currency(transaction.net_amount)}",
        "success"
    )
    elapsed = round(_time.time() - start_time, 2)
    logger.info(f"[Payment] Done | request ID: {request_id} | elapsed: {elapsed}s | tx: {transaction.id} | net: {format_currency(transaction.net_amount)}")
    return {
        "success": True,
        "message": f"Invoice {invoice_id} paid",
        "data": transaction.model_dump(mode="json"),
        "request_id": request_id
    }


@app.get("/transactions", response_model=ApiResponse, tags=["Settlement"])
async def list_transactions(store: FieldOpsStore = Depends(get_store)):
    transactions = store.transactions
    return {
        "success": True,
        "message": f"{len(transactions)} transactions",
        "data": [t.model_dump(mode="json") for t in transactions],
        "request_id": str(uuid.uuid4())
    }


# ================= Rates =================
@app.get("/rates", response_model=ApiResponse, tags=["Rates"])
async def get_rates(service: RateService = Depends(get_rate_service)):
    return {
        "success": True,
        "message": "Current unit rates",
        "data": service.get_rates().model_dump(mode="json"),
        "request_id": str(uuid.uuid4())
    }


@app.put("/rates", response_model=ApiResponse, tags=["Rates"])
async def update_rates(
        rates: UnitRates,
        user: CurrentUser = Depends(require_roles(*OWNER_ONLY)),
        service: RateService = Depends(get_rate_service),
        notifications: NotificationService = Depends(get_notifications)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[Rates] Update | request ID: {request_id} | by: {user.name}")
    try:
        updated = service.update_rates(rates)
    except Exception as e:
        _raise_http("Rates", request_id, start_time, e)
    notifications.add("Contract updated", "New rates saved and shared with the AI analysis.", "success")
    return {
        "success": True,
        "message": "Unit rates updated",
        "data": updated.model_dump(mode="json"),
        "request_id": request_id
    }


# ================= Dashboard =================
@app.get("/dashboard", response_model=ApiResponse, tags=["Dashboard"])
async def dashboard(
        period: str = Query("monthly", description="daily, weekly or monthly"),
        service: DashboardService = Depends(get_dashboard_service)
):
    request_id = str(uuid.uuid4())
    try:
        metrics = service.metrics(period)
    except Exception as e:
        _raise_http("Dashboard", request_id, _time.time(), e)
    return {
        "success": True,
        "message": f"Metrics for period {period}",
        "data": metrics.model_dump(mode="json"),
        "request_id": request_id
    }


@app.get("/admin/summary", response_model=ApiResponse, tags=["Dashboard"])
async def admin_summary(
        user: CurrentUser = Depends(require_roles(*ADMIN_ROLES)),
        service: InvoiceService = Depends(get_invoice_service)
):
    return {
        "success": True,
        "message": "Invoice totals",
        "data": service.admin_summary().model_dump(mode="json"),
        "request_id": str(uuid.uuid4())
    }


@app.get("/wallet", response_model=ApiResponse, tags=["Dashboard"])
async def wallet(service: DashboardService = Depends(get_dashboard_service)):
    return {
        "success": True,
        "message": "Wallet balance",
        "data": service.wallet().model_dump(mode="json"),
        "request_id": str(uuid.uuid4())
    }


# ================= Notifications =================
@app.get("/notifications", response_model=ApiResponse, tags=["Notifications"])
async def list_notifications(notifications: NotificationService = Depends(get_notifications)):
    return {
        "success": True,
        "message": "Notifications",
        "data": notifications.list().model_dump(mode="json"),
        "request_id": str(uuid.uuid4())
    }


@app.post("/notifications/read", response_model=ApiResponse, tags=["Notifications"])
async def mark_notifications_read(notifications: NotificationService = Depends(get_notifications)):
    notifications.mark_all_read()
    return {"success": True, "message": "All notifications marked as read", "request_id": str(uuid.uuid4())}


# ================= AI audits =================
@app.post("/audit/image", response_model=ApiResponse, tags=["AI Audit"])
async def audit_image(
        file: UploadFile = File(...),
        service: AiService = Depends(get_ai_service),
        notifications: NotificationService = Depends(get_notifications)
):
    """Photo audit of an installation."""
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    content = await file.read()
    mime_type = file.content_type or "image/jpeg"
    logger.info(f"[Photo audit] Start | request ID: {request_id} | file: {file.filename} | {len(content)} bytes")

    b64 = to_base64(content)
    outcome = service.analyze_construction_image(b64, mime_type)
    elapsed = round(_time.time() - start_time, 2)

    if not outcome.ok:
        logger.warning(f"[Photo audit] Failed | request ID: {request_id} | elapsed: {elapsed}s | reason: {outcome.reason.value}")
        result = placeholder_audit(f"data:{mime_type};base64,{b64}")
        notifications.notify_audit(result)
        return {
            "success": False,
            "message": "Automatic analysis failed. Please try again.",
            "data": result.model_dump(mode="json"),
            "request_id": request_id
        }

    notifications.notify_audit(outcome.payload)
    logger.info(f"[Photo audit] Done | request ID: {request_id} | elapsed: {elapsed}s")
    return {
        "success": True,
        "message": "Analysis complete",
        "data": outcome.payload.model_dump(mode="json"),
        "request_id": request_id
    }


@app.post("/audit/map", response_model=ApiResponse, tags=["AI Audit"])
async def audit_map(
        file: UploadFile = File(...),
        service: AiService = Depends(get_ai_service),
        store: FieldOpsStore = Depends(get_store)
):
    """Bill of quantities from a map image/PDF or a KML/XML file, priced at the contract rates."""
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    content = await file.read()
    mime_type = file.content_type or "image/jpeg"
    kml = is_kml(mime_type, file.filename)
    logger.info(f"[Map analysis] Start | request ID: {request_id} | file: {file.filename} | kml: {kml}")

    payload = content.decode("utf-8", errors="replace") if kml else to_base64(content)

    rates = store.rates
    outcome = service.analyze_map_boq(payload, mime_type, rates=rates, is_kml=kml)
    elapsed = round(_time.time() - start_time, 2)

    if not outcome.ok:
        logger.warning(f"[Map analysis] Failed | request ID: {request_id} | elapsed: {elapsed}s | reason: {outcome.reason.value}")
        data = MapAuditData(analysis=placeholder_map_analysis())
        return {
            "success": False,
            "message": "Map analysis failed. Please try again.",
            "data": data.model_dump(mode="json"),
            "request_id": request_id
        }

    data = MapAuditData(analysis=outcome.payload, work_order=service.work_order_from_map(outcome.payload, rates))
    logger.info(f"[Map analysis] Done | request ID: {request_id} | elapsed: {elapsed}s")
    return {
        "success": True,
        "message": "Map analysis complete",
        "data": data.model_dump(mode="json"),
        "request_id": request_id
    }


@app.post("/ai/chat", tags=["AI Assistant"])
async def ai_chat(request: ChatRequest, service: AiService = Depends(get_ai_service)):
    """Streams the assistant reply as plain text."""
    logger.info(f"[AI chat] Start | history: {len(request.history)} turns | thinking: {request.thinking}")
    return StreamingResponse(
        service.generate_response_stream(request.message, request.history, thinking=request.thinking),
        media_type="text/plain; charset=utf-8"
    )


@app.post("/ai/transcribe", response_model=ApiResponse, tags=["AI Assistant"])
async def ai_transcribe(
        file: UploadFile = File(...),
        service: AiService = Depends(get_ai_service)
):
    request_id = str(uuid.uuid4())
    content = await file.read()
    outcome = service.transcribe_audio(
        content, file.filename or "audio.webm", file.content_type or "audio/webm"
    )
    if not outcome.ok:
        return {
            "success": False,
            "message": TRANSCRIPTION_ERROR_TEXT,
            "data": TranscriptionData(text=TRANSCRIPTION_ERROR_TEXT).model_dump(),
            "request_id": request_id
        }
    return {
        "success": True,
        "message": "Transcription complete",
        "data": TranscriptionData(text=outcome.payload).model_dump(),
        "request_id": request_id
    }


# ================= Reports =================
@app.get("/reports/billing", tags=["Reports"])
async def billing_report(
        crew: Optional[str] = Query(None, description="Restrict to one crew"),
        user: CurrentUser = Depends(require_roles(*ADMIN_ROLES)),
        store: FieldOpsStore = Depends(get_store)
):
    request_id = str(uuid.uuid4())
    start_time = _time.time()
    logger.info(f"[Billing report] Start | request ID: {request_id} | crew: {crew or 'all'}")
    try:
        content = BillingReportGenerator(store).generate_billing_report(crew_name=crew)
    except Exception as e:
        _raise_http("Billing report", request_id, start_time, e)

    filename = f"billing_report_{datetime.now().strftime('%Y_%m_%d')}.xlsx"
    elapsed = round(_time.time() - start_time, 2)
    logger.info(f"[Billing report] Done | request ID: {request_id} | elapsed: {elapsed}s | size: {round(len(content) / 1024, 2)}KB")
    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}",
            "X-Request-ID": request_id
        }
    )
