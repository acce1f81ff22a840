from .invoice_service import InvoiceService
from .settlement_service import PaymentSettlementService
from .rate_service import RateService
from .dashboard_service import DashboardService
from .notification_service import NotificationService
from .ai_service import AiService

__all__ = [
    "InvoiceService",
    "PaymentSettlementService",
    "RateService",
    "DashboardService",
    "NotificationService",
    "AiService"
]
