import uuid
from datetime import datetime
from typing import List

from ..models import AuditResult, AuditStatus, Notification, NotificationList


class NotificationService:
    """In-session notification feed, newest first. Not persisted."""

    def __init__(self):
        self._items: List[Notification] = []

    def add(self, title: str, message: str, type: str = "info") -> Notification:
        notification = Notification(
            id=str(uuid.uuid4()),
            type=type,
            title=title,
            message=message,
            timestamp=datetime.now(),
        )
        self._items.insert(0, notification)
        return notification

    def notify_audit(self, result: AuditResult) -> Notification:
        if result.status == AuditStatus.CRITICAL:
            return self.add(
                "Audit: critical failure",
                f"Critical item detected in the photo. Score: {result.compliance_score:g}",
                "critical",
            )
        if result.status == AuditStatus.DIVERGENT:
            return self.add(
                "Audit: divergence",
                "Divergences found. Supervisor review required.",
                "warning",
            )
        if result.status == AuditStatus.COMPLIANT:
            return self.add("Audit: passed", "Installation approved.", "success")
        return self.add("Audit: incomplete", "Automatic analysis could not be completed.", "info")

    def list(self) -> NotificationList:
        return NotificationList(
            unread=sum(1 for n in self._items if not n.read),
            items=list(self._items),
        )

    def mark_all_read(self):
        self._items = [n.model_copy(update={"read": True}) for n in self._items]
