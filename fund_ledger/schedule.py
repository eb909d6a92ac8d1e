"""
Master Due Schedule Module

The fund-wide reference schedule of installment amounts and dates that
collectors consult. It is uploaded as a whole and listed in due number order;
it is independent of any single account's installments.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from .audit import AuditTrail, AuditEventType
from .config import FundLedgerConfig, get_config
from .interchange import build_due_schedule_document, parse_due_schedule_document
from .logging_config import log_action
from .models import DueScheduleEntry
from .money import ZERO, round2
from .repository import DueScheduleRepository


logger = logging.getLogger(__name__)


@dataclass
class DueScheduleSummary:
    """Totals shown under the schedule listing"""
    entry_count: int
    total_due_amount: Decimal
    total_interest: Decimal
    grand_total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entry_count': self.entry_count,
            'total_due_amount': str(self.total_due_amount),
            'total_interest': str(self.total_interest),
            'grand_total': str(self.grand_total)
        }


def summarize_schedule(entries: List[DueScheduleEntry]) -> DueScheduleSummary:
    """Sum the principal and interest columns; the grand total is the last running total"""
    ordered = sorted(entries, key=lambda e: e.due_no)
    return DueScheduleSummary(
        entry_count=len(ordered),
        total_due_amount=round2(sum((e.due_amount for e in ordered), ZERO)),
        total_interest=round2(sum((e.due_interest for e in ordered), ZERO)),
        grand_total=ordered[-1].total if ordered else ZERO
    )


class DueScheduleManager:
    """Upload and listing of the master due schedule"""

    def __init__(
        self,
        repository: DueScheduleRepository,
        audit_trail: AuditTrail,
        config: Optional[FundLedgerConfig] = None
    ):
        self.repository = repository
        self.audit_trail = audit_trail
        self.config = config or get_config()

    def import_schedule(self, payload: Any, user_id: Optional[str] = None) -> List[DueScheduleEntry]:
        """
        Replace the master schedule with an uploaded one

        Raises:
            ImportValidationError: If any row is invalid; nothing is written
        """
        entries = parse_due_schedule_document(payload)
        summary = summarize_schedule(entries)

        with self.repository.storage.atomic():
            self.repository.replace_all(entries)
            if self.config.enable_audit_logging:
                self.audit_trail.log_event(
                    event_type=AuditEventType.DUE_SCHEDULE_IMPORTED,
                    entity_type="due_schedule",
                    entity_id="master",
                    metadata=summary.to_dict(),
                    user_id=user_id
                )

        log_action(logger, "info", f"Imported due schedule with {len(entries)} entries",
                   user_id=user_id, action="import_due_schedule",
                   amount=summary.grand_total)
        return entries

    def list_schedule(self) -> List[DueScheduleEntry]:
        return self.repository.list_all()

    def summary(self) -> DueScheduleSummary:
        return summarize_schedule(self.repository.list_all())

    def export_schedule(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return build_due_schedule_document(self.repository.list_all(), now)
