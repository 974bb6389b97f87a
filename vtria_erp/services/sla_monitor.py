"""
SLA Monitor Service
Periodic SLA warning, breach detection, automatic escalation and housekeeping
"""
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from vtria_erp.core.config import settings
from vtria_erp.core.database import SessionLocal
from vtria_erp.models.case import Case, CaseStateTransition
from vtria_erp.models.notification import CaseEscalation, EscalationRule, NotificationQueue
from vtria_erp.services.escalations import EscalationService
from vtria_erp.services.notifications import NotificationService

logger = logging.getLogger(__name__)

HIGH_PRIORITIES = ("high", "urgent")


class SLAMonitorService:
    """
    SLA Monitor Service
    Evaluates active cases against their expected state completion time
    """

    def __init__(self, db: Session, now: Optional[datetime] = None):
        self.db = db
        self.now = now or datetime.utcnow()
        self.notifications = NotificationService(db)
        self.escalations = EscalationService(db)

    def _active_cases(self):
        return self.db.query(Case).filter(
            Case.status == "active",
            Case.expected_state_completion.isnot(None)
        )

    def _context(self, case: Case, **extra) -> Dict[str, Any]:
        context = {
            "case_number": case.case_number,
            "project_name": case.project_name,
            "state": case.current_state,
            "sub_state": case.current_sub_state,
        }
        context.update(extra)
        return context

    def check_sla_warnings(self) -> int:
        """Warn owners of cases that breach within the warning window"""
        window_end = self.now + timedelta(hours=settings.SLA_WARNING_HOURS)
        dedup_since = self.now - timedelta(hours=settings.SLA_WARNING_DEDUP_HOURS)

        cases = self._active_cases().filter(
            Case.is_sla_breached.is_(False),
            Case.expected_state_completion > self.now,
            Case.expected_state_completion <= window_end
        ).all()

        warned = 0
        for case in cases:
            recent = self.db.query(NotificationQueue).filter(
                NotificationQueue.case_id == case.id,
                NotificationQueue.template_key == "sla_warning",
                NotificationQueue.created_at >= dedup_since
            ).first()
            if recent:
                continue

            hours_remaining = round((case.expected_state_completion - self.now).total_seconds() / 3600, 1)
            self.notifications.queue_notification(
                "sla_warning",
                context=self._context(case, hours_remaining=hours_remaining),
                recipient_user_id=case.assigned_to or case.created_by,
                case_id=case.id,
                priority=case.priority,
                created_at=self.now,
            )
            warned += 1

        self.db.commit()
        if warned:
            logger.info(f"SLA warnings queued for {warned} cases")
        return warned

    def check_sla_breaches(self) -> int:
        """Flag cases past their deadline and notify owner, admins and, for high priority, directors"""
        cases = self._active_cases().filter(
            Case.is_sla_breached.is_(False),
            Case.expected_state_completion <= self.now
        ).all()

        for case in cases:
            case.is_sla_breached = True
            case.sla_breached_at = self.now
            context = self._context(case)

            self.notifications.queue_notification(
                "sla_breach", context=context,
                recipient_user_id=case.assigned_to or case.created_by,
                case_id=case.id, priority="high", created_at=self.now,
            )
            self.notifications.queue_notification(
                "sla_breach", context=context, recipient_role="admin",
                case_id=case.id, priority="high", created_at=self.now,
            )
            if case.priority in HIGH_PRIORITIES:
                self.notifications.queue_notification(
                    "sla_breach", context=context, recipient_role="director",
                    case_id=case.id, priority="urgent", created_at=self.now,
                )

        self.db.commit()
        if cases:
            logger.warning(f"SLA breached for {len(cases)} cases")
        return len(cases)

    def process_automatic_escalations(self) -> int:
        """Apply matching escalation rules to breached cases"""
        rules = self.db.query(EscalationRule).filter(EscalationRule.is_active.is_(True)).all()
        cases = self._active_cases().filter(Case.is_sla_breached.is_(True)).all()

        escalated = 0
        for case in cases:
            hours_overdue = (self.now - case.expected_state_completion).total_seconds() / 3600
            for rule in rules:
                if rule.state_name not in (None, case.current_state):
                    continue
                if rule.priority not in (None, case.priority):
                    continue
                if rule.hours_overdue > hours_overdue:
                    continue

                window_start = self.now - timedelta(hours=rule.escalate_after_hours)
                already = self.db.query(CaseEscalation).filter(
                    CaseEscalation.case_id == case.id,
                    CaseEscalation.rule_id == rule.id,
                    CaseEscalation.created_at >= window_start
                ).first()
                if already:
                    continue

                self.escalations.escalate(
                    case,
                    rule.escalate_to_role,
                    f"{rule.rule_name}: {round(hours_overdue, 1)} hours overdue in {case.current_state}",
                    level=rule.escalation_level,
                    rule=rule,
                    created_at=self.now,
                )
                escalated += 1

        self.db.commit()
        if escalated:
            logger.warning(f"{escalated} automatic escalations raised")
        return escalated

    def cleanup(self) -> Dict[str, int]:
        escalation_cutoff = self.now - timedelta(days=settings.ESCALATION_RETENTION_DAYS)
        notification_cutoff = self.now - timedelta(days=settings.NOTIFICATION_RETENTION_DAYS)

        escalations = self.db.query(CaseEscalation).filter(
            CaseEscalation.status == "resolved",
            CaseEscalation.created_at < escalation_cutoff
        ).delete(synchronize_session=False)
        notifications = self.db.query(NotificationQueue).filter(
            NotificationQueue.status.in_(("sent", "failed")),
            NotificationQueue.created_at < notification_cutoff
        ).delete(synchronize_session=False)

        self.db.commit()
        logger.info(f"SLA cleanup removed {escalations} escalations and {notifications} notifications")
        return {"escalations_deleted": escalations, "notifications_deleted": notifications}

    def compliance_report(self, days: int = 30) -> Dict[str, Any]:
        """Per-state share of cases created in the window that have not breached"""
        from vtria_erp.services.case_workflow import CASE_STATES

        since = self.now - timedelta(days=days)
        rows = self.db.query(
            Case.current_state, Case.is_sla_breached, func.count(Case.id)
        ).filter(
            Case.created_at >= since,
            Case.status != "deleted"
        ).group_by(Case.current_state, Case.is_sla_breached).all()

        states = {state: {"total": 0, "compliant": 0, "breached": 0} for state in CASE_STATES}
        for state, breached, count in rows:
            bucket = states.setdefault(state, {"total": 0, "compliant": 0, "breached": 0})
            bucket["total"] += count
            bucket["breached" if breached else "compliant"] += count

        for bucket in states.values():
            bucket["compliance_percentage"] = (
                round(bucket["compliant"] / bucket["total"] * 100, 2) if bucket["total"] else 100.0
            )

        total = sum(b["total"] for b in states.values())
        compliant = sum(b["compliant"] for b in states.values())
        return {
            "period_days": days,
            "by_state": states,
            "overall": {
                "total": total,
                "compliant": compliant,
                "breached": total - compliant,
                "compliance_percentage": round(compliant / total * 100, 2) if total else 100.0,
            },
        }

    def performance_metrics(self, days: int = 30) -> Dict[str, Any]:
        since = self.now - timedelta(days=days)
        transitions = self.db.query(CaseStateTransition).filter(
            CaseStateTransition.transition_type == "state_change",
            CaseStateTransition.created_at >= since
        ).order_by(CaseStateTransition.case_id, CaseStateTransition.created_at, CaseStateTransition.id).all()

        durations: Dict[str, list] = {}
        previous = None
        for t in transitions:
            if previous is not None and previous.case_id == t.case_id and previous.to_state:
                hours = (t.created_at - previous.created_at).total_seconds() / 3600
                durations.setdefault(previous.to_state, []).append(hours)
            previous = t

        closed = self.db.query(Case).filter(Case.closed_at >= since).all()
        cycle_days = [
            (c.closed_at - c.created_at).total_seconds() / 86400
            for c in closed if c.created_at
        ]

        return {
            "period_days": days,
            "average_hours_in_state": {
                state: round(sum(values) / len(values), 2) for state, values in durations.items()
            },
            "cases_created": self.db.query(Case).filter(Case.created_at >= since).count(),
            "cases_closed": len(closed),
            "average_cycle_days": round(sum(cycle_days) / len(cycle_days), 2) if cycle_days else None,
        }

    def run_all(self) -> Dict[str, int]:
        return {
            "warnings": self.check_sla_warnings(),
            "breaches": self.check_sla_breaches(),
            "escalations": self.process_automatic_escalations(),
        }


class SLAScheduler:
    """
    Background SLA scheduler
    Runs the SLA checks, notification delivery and daily housekeeping in a daemon thread
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory
        self.sla_interval = settings.SLA_CHECK_INTERVAL_MINUTES * 60
        self.notification_interval = settings.NOTIFICATION_INTERVAL_MINUTES * 60
        self.cleanup_interval = 24 * 60 * 60
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_run: Dict[str, float] = {}

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        if self.running:
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="sla-scheduler", daemon=True)
        self._thread.start()
        logger.info("SLA scheduler started")
        return True

    def stop(self) -> bool:
        if not self.running:
            return False
        self._stop_event.set()
        self._thread.join(timeout=10)
        logger.info("SLA scheduler stopped")
        return True

    def _due(self, job: str, interval: float) -> bool:
        last = self._last_run.get(job)
        now = time.monotonic()
        if last is None or now - last >= interval:
            self._last_run[job] = now
            return True
        return False

    def _run(self, job: str, action: Callable[[SLAMonitorService], Any]):
        db = self.session_factory()
        try:
            result = action(SLAMonitorService(db))
            logger.debug(f"SLA job {job} finished: {result}")
        except Exception as e:
            db.rollback()
            logger.error(f"SLA job {job} failed: {e}", exc_info=True)
        finally:
            db.close()

    def run_sla_checks(self):
        self._run("sla_checks", lambda monitor: monitor.run_all())

    def run_notifications(self):
        self._run("notifications", lambda monitor: monitor.notifications.process_queue())

    def run_daily(self):
        self._run("metrics", lambda monitor: logger.info(f"Daily SLA metrics: {monitor.performance_metrics(days=1)}"))
        self._run("cleanup", lambda monitor: monitor.cleanup())

    def _loop(self):
        while not self._stop_event.is_set():
            if self._due("sla_checks", self.sla_interval):
                self.run_sla_checks()
            if self._due("notifications", self.notification_interval):
                self.run_notifications()
            if self._due("daily", self.cleanup_interval):
                self.run_daily()
            self._stop_event.wait(30)
