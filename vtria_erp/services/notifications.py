"""
Notification Service
Template rendering, queueing and delivery bookkeeping for workflow notifications
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from vtria_erp.core.exceptions import InsufficientPermissionsError, NotFoundError, ValidationError
from vtria_erp.models.notification import NotificationQueue, NotificationTemplate
from vtria_erp.models.user import User

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render_template(text: str, context: Dict[str, Any]) -> str:
    """Replace {{name}} tokens; unknown names render as empty strings"""
    def _sub(match):
        value = context.get(match.group(1))
        return "" if value is None else str(value)
    return PLACEHOLDER.sub(_sub, text)


class NotificationService:
    """Queue and deliver in-app notifications"""

    def __init__(self, db: Session):
        self.db = db

    def list_templates(self) -> List[NotificationTemplate]:
        return self.db.query(NotificationTemplate).order_by(NotificationTemplate.template_key).all()

    def _recipients(self, user_id: Optional[int], role: Optional[str]) -> List[User]:
        if user_id is not None:
            user = self.db.query(User).filter(User.id == user_id).first()
            return [user] if user else []
        if role:
            return self.db.query(User).filter(User.role == role, User.is_active.is_(True)).all()
        raise ValidationError("A recipient user or role is required")

    def queue_notification(
        self,
        template_key: str,
        context: Optional[Dict[str, Any]] = None,
        recipient_user_id: Optional[int] = None,
        recipient_role: Optional[str] = None,
        case_id: Optional[int] = None,
        priority: str = "medium",
        created_at: Optional[datetime] = None,
    ) -> List[NotificationQueue]:
        """
        Render a template for each recipient and add the rows to the session

        created_at overrides the queue timestamp for callers running on their own clock.
        """
        template = self.db.query(NotificationTemplate).filter(
            NotificationTemplate.template_key == template_key,
            NotificationTemplate.is_active.is_(True)
        ).first()
        if not template:
            raise NotFoundError(f"Notification template '{template_key}' not found")

        context = context or {}
        subject = render_template(template.subject, context)
        message = render_template(template.body, context)

        queued = []
        for recipient in self._recipients(recipient_user_id, recipient_role):
            row = NotificationQueue(
                template_key=template_key,
                recipient_user_id=recipient.id,
                case_id=case_id,
                subject=subject,
                message=message,
                channel=template.channel,
                priority=priority,
                context={k: str(v) for k, v in context.items()},
                status="pending",
                created_at=created_at or datetime.utcnow(),
            )
            self.db.add(row)
            queued.append(row)
        self.db.flush()
        return queued

    def send_manual(
        self,
        recipient_user_id: int,
        subject: str,
        message: str,
        case_id: Optional[int] = None,
        priority: str = "medium",
    ) -> NotificationQueue:
        if not self.db.query(User).filter(User.id == recipient_user_id).first():
            raise NotFoundError(f"User {recipient_user_id} not found")

        row = NotificationQueue(
            template_key="manual",
            recipient_user_id=recipient_user_id,
            case_id=case_id,
            subject=subject,
            message=message,
            priority=priority,
            status="pending",
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def process_queue(self, limit: int = 100) -> Dict[str, int]:
        """Deliver pending notifications; inactive recipients fail"""
        pending = self.db.query(NotificationQueue).filter(
            NotificationQueue.status == "pending"
        ).order_by(NotificationQueue.created_at, NotificationQueue.id).limit(limit).all()

        result = {"processed": 0, "sent": 0, "failed": 0}
        now = datetime.utcnow()
        for row in pending:
            result["processed"] += 1
            if row.recipient is None or not row.recipient.is_active:
                row.status = "failed"
                row.error_message = "Recipient is inactive"
                result["failed"] += 1
                continue
            row.status = "sent"
            row.sent_at = now
            result["sent"] += 1

        self.db.commit()
        if result["processed"]:
            logger.info(f"Notification queue processed: {result}")
        return result

    def list_queue(
        self,
        status: Optional[str] = None,
        user_id: Optional[int] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[NotificationQueue], int]:
        query = self.db.query(NotificationQueue)
        if status:
            query = query.filter(NotificationQueue.status == status)
        if user_id:
            query = query.filter(NotificationQueue.recipient_user_id == user_id)
        total = query.count()
        items = query.order_by(desc(NotificationQueue.created_at), desc(NotificationQueue.id)) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    def mark_read(self, notification_id: int, user: User) -> NotificationQueue:
        row = self.db.query(NotificationQueue).filter(NotificationQueue.id == notification_id).first()
        if not row:
            raise NotFoundError(f"Notification {notification_id} not found")
        if row.recipient_user_id != user.id:
            raise InsufficientPermissionsError("Only the recipient can mark a notification as read")
        row.is_read = True
        row.read_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(row)
        return row
