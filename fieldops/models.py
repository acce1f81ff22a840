from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional, Any, Literal


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_QC = "PENDING_QC"
    APPROVED = "APPROVED"
    PAID = "PAID"


class QCStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    PASSED = "PASSED"
    FAILED = "FAILED"


class TransactionStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


class AuditStatus(str, Enum):
    PENDING = "PENDING"
    COMPLIANT = "COMPLIANT"
    DIVERGENT = "DIVERGENT"
    CRITICAL = "CRITICAL"


class UserRole(str, Enum):
    OWNER = "OWNER"
    SUPERVISOR = "SUPERVISOR"
    LINEMAN = "LINEMAN"


# ---------------------------------------------------------------------------
# Domain entities
# ---------------------------------------------------------------------------

class UnitRates(BaseModel):
    """Contract unit rates; cable rates are per foot, hardware rates per unit."""
    strand: float = Field(0.30, ge=0, description="Strand, per foot")
    fiber: float = Field(0.30, ge=0, description="Fiber, per foot")
    overlash: float = Field(0.25, ge=0, description="Overlash, per foot")
    anchor: float = Field(15.00, ge=0, description="Anchor, per unit")
    snowshoe: float = Field(10.00, ge=0, description="Snowshoe, per unit")
    composite: float = Field(0.50, ge=0, description="Composite hardware, per unit")
    riser: float = Field(12.00, ge=0, description="Riser, per unit")


class InvoiceItems(BaseModel):
    """Itemized hardware counts reported by a crew."""
    snowshoes: float = Field(0, description="Snowshoes installed")
    anchors: float = Field(0, description="Anchors installed")
    coils: float = Field(0, description="Coils (counted, not billed)")
    risers: float = Field(0, description="Risers installed")
    composites: float = Field(0, description="Composite hardware installed")

    @field_validator("snowshoes", "anchors", "coils", "risers", "composites", mode="before")
    @classmethod
    def null_count_is_zero(cls, v):
        return 0 if v is None else v


class Invoice(BaseModel):
    id: str = Field(..., description="Invoice ID, INV-<year>-<n>")
    crew_name: str = Field(..., description="Submitting crew")
    route_id: str = Field(..., description="Route identifier")
    cable_type: str = Field("fiber", description="Billed cable category: strand/fiber/overlash")
    fiber_count: Optional[str] = Field(None, description="Fiber count label, e.g. 48ct")
    total_footage: float = Field(0, description="Total linear footage")
    total_amount: float = Field(..., description="Amount computed at submission time")
    status: InvoiceStatus = Field(InvoiceStatus.PENDING_QC, description="Lifecycle status")
    qc_status: QCStatus = Field(QCStatus.NOT_STARTED, description="Quality-control status")
    date: datetime = Field(..., description="Submission timestamp")
    items: InvoiceItems = Field(default_factory=InvoiceItems, description="Hardware counts")


class Transaction(BaseModel):
    """Append-only payout ledger entry."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Transaction ID, TX-<epoch ms>")
    date: datetime = Field(..., description="Settlement timestamp")
    amount: float = Field(..., description="Gross amount")
    fee: float = Field(..., description="Transaction fee")
    net_amount: float = Field(..., description="amount - fee")
    status: TransactionStatus = Field(TransactionStatus.COMPLETED, description="Transfer status")
    type: Literal["PAYOUT"] = Field("PAYOUT", description="Transaction type")
    description: str = Field(..., description="Human-readable description")
    invoice_id: str = Field(..., description="Settled invoice")


class Notification(BaseModel):
    id: str
    type: Literal["info", "success", "warning", "critical"] = "info"
    title: str
    message: str
    timestamp: datetime
    read: bool = False


# ---------------------------------------------------------------------------
# AI boundary payloads
# ---------------------------------------------------------------------------

class AIPayloadModel(BaseModel):
    """Accepts the camelCase keys the AI response schema declares."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuditAssessment(AIPayloadModel):
    compliance_score: float = Field(0, description="Installation quality score 0-100")
    status: str = Field("PENDING", description="COMPLIANT, DIVERGENT or CRITICAL")
    detected_items: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    ai_summary: str = Field("Analysis complete.")


class AuditResult(BaseModel):
    id: str = Field(..., description="Audit ID")
    timestamp: datetime = Field(..., description="Analysis time")
    status: AuditStatus = Field(AuditStatus.PENDING, description="Compliance status")
    compliance_score: float = Field(0, description="Installation quality score 0-100")
    detected_items: List[str] = Field(default_factory=list, description="Components found in the photo")
    issues: List[str] = Field(default_factory=list, description="Execution problems found")
    ai_summary: str = Field("", description="Short technical summary")
    image_url: Optional[str] = Field(None, description="data: URL of the analysed image")


class EquipmentCount(AIPayloadModel):
    name: str = ""
    quantity: float = 0


class MapFinancials(AIPayloadModel):
    estimated_labor_cost: float = 0
    estimated_material_cost: float = 0
    potential_savings: float = 0


class MaterialLine(AIPayloadModel):
    item: str = ""
    quantity: float = 0
    unit: str = ""


class SpliceRecommendation(AIPayloadModel):
    location: str = ""
    reason: str = ""
    action: str = ""


class MapAnalysisResult(AIPayloadModel):
    total_cable_length: float = Field(0, description="Sum of all spans, in feet")
    cable_type: str = Field("Unknown", description="Predominant fiber count, e.g. 48ct")
    span_count: float = Field(0, description="Number of spans counted")
    equipment_counts: List[EquipmentCount] = Field(default_factory=list)
    financials: MapFinancials = Field(default_factory=MapFinancials)
    material_list: List[MaterialLine] = Field(default_factory=list, description="Warehouse pick list")
    detected_anomalies: List[str] = Field(default_factory=list)
    splice_recommendation: Optional[SpliceRecommendation] = None


class WorkOrderDraft(BaseModel):
    """Submission prefill derived from a map analysis."""
    total_footage: float = 0
    fiber_count: str = "48ct"
    items: InvoiceItems = Field(default_factory=InvoiceItems)
    estimated_amount: float = 0


class AIFailureReason(str, Enum):
    NOT_CONFIGURED = "not_configured"
    SERVICE_ERROR = "service_error"
    INVALID_RESPONSE = "invalid_response"


class AIOutcome(BaseModel):
    """Tagged result of a call across the AI boundary."""
    kind: Literal["success", "failure"]
    payload: Optional[Any] = None
    reason: Optional[AIFailureReason] = None
    detail: Optional[str] = None

    @classmethod
    def success(cls, payload: Any) -> "AIOutcome":
        return cls(kind="success", payload=payload)

    @classmethod
    def failure(cls, reason: AIFailureReason, detail: str = None) -> "AIOutcome":
        return cls(kind="failure", reason=reason, detail=detail)

    @property
    def ok(self) -> bool:
        return self.kind == "success"


# ---------------------------------------------------------------------------
# Requests / responses
# ---------------------------------------------------------------------------

class InvoiceSubmitRequest(BaseModel):
    """Crew work submission"""
    route_id: str = Field(..., min_length=1, description="Route identifier")
    total_footage: float = Field(..., description="Total linear footage installed")
    cable_type: str = Field("fiber", description="Billed cable category: strand/fiber/overlash")
    fiber_count: Optional[str] = Field(None, description="Fiber count label, e.g. 48ct")
    items: InvoiceItems = Field(default_factory=InvoiceItems, description="Hardware counts")


class EstimateRequest(BaseModel):
    total_footage: Optional[float] = Field(None, description="Footage entered so far")
    cable_type: str = Field("fiber", description="Billed cable category")
    items: InvoiceItems = Field(default_factory=InvoiceItems)


class QCUpdateRequest(BaseModel):
    qc_status: Literal["PASSED", "FAILED"] = Field(..., description="QC outcome")


class SettlementPreview(BaseModel):
    invoice_id: str
    amount: float
    fee: float
    net_amount: float
    fee_rate: float


class AdminSummary(BaseModel):
    total_wip: float = Field(..., description="Amount in DRAFT or PENDING_QC")
    total_approved: float = Field(..., description="Amount approved, awaiting payment")
    total_qc_blocked: float = Field(..., description="Amount with failed QC")


class CrewProduction(BaseModel):
    name: str
    spans: int
    footage: float


class DashboardMetrics(BaseModel):
    period: Literal["daily", "weekly", "monthly"]
    invoice_count: int
    revenue_estimate: float
    production_total: float
    qc_issues: int
    compliance_rate: int
    production_by_crew: List[CrewProduction] = Field(default_factory=list)


class ChatTurn(BaseModel):
    role: str = Field("user", description="user or model")
    parts: Any = Field("", description="Message text or list of parts")


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: List[ChatTurn] = Field(default_factory=list)
    thinking: bool = Field(False, description="Use the deeper reasoning model")


class ApiResponse(BaseModel):
    """Standard response envelope"""
    success: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Result message")
    data: Optional[Any] = Field(None, description="Payload")
    request_id: str = Field(..., description="Request ID for tracing")


class MapAuditData(BaseModel):
    analysis: MapAnalysisResult
    work_order: Optional[WorkOrderDraft] = None


class NotificationList(BaseModel):
    unread: int
    items: List[Notification]


class WalletSummary(BaseModel):
    balance: float
    payouts: int


class TranscriptionData(BaseModel):
    text: str

