"""
Audit Trail Module

Hash-chained append-only log of every ledger state change. Each event stores
the SHA-256 hash of its predecessor, so editing or removing an event breaks
the chain and is caught by verify_integrity().
"""

import hashlib
import json
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of audit events"""
    # Account lifecycle
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"

    # Ledger operations
    PAYMENT_COLLECTED = "payment_collected"
    LOAN_AMOUNT_CHANGED = "loan_amount_changed"
    LOAN_REPAID = "loan_repaid"
    DUE_DETAILS_UPDATED = "due_details_updated"
    FUND_AMOUNT_UPDATED = "fund_amount_updated"

    # Bulk interchange
    DUE_PAYMENTS_IMPORTED = "due_payments_imported"
    ACCOUNTS_IMPORTED = "accounts_imported"
    DUE_SCHEDULE_IMPORTED = "due_schedule_imported"


def _serializable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serializable(v) for v in value]
    return value


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event chained to its predecessor by hash

    ``sequence`` orders the chain; timestamps alone can collide.
    """
    sequence: int
    event_type: AuditEventType
    entity_type: str
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None

    def __post_init__(self):
        self.metadata = _serializable(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = self._record_dict()
        result.update({
            'sequence': self.sequence,
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash,
            'metadata': self.metadata,
            'user_id': self.user_id
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        timestamps = cls._parse_timestamps(data)
        return cls(
            id=data['id'],
            created_at=timestamps['created_at'],
            updated_at=timestamps['updated_at'],
            sequence=int(data['sequence']),
            event_type=AuditEventType(data['event_type']),
            entity_type=data['entity_type'],
            entity_id=data['entity_id'],
            previous_hash=data.get('previous_hash', ''),
            current_hash=data.get('current_hash', ''),
            metadata=data.get('metadata') or {},
            user_id=data.get('user_id')
        )


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()

    def _load_events(self) -> List[AuditEvent]:
        events = [AuditEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        events.sort(key=lambda e: e.sequence)
        return events

    def _chain_head(self) -> Optional[Dict[str, Any]]:
        head = None
        for data in self.storage.load_all(self.table_name):
            if head is None or data['sequence'] > head['sequence']:
                head = data
        return head

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an event to the chain

        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited ("account", "import")
            entity_id: Business key of the entity
            metadata: Event-specific data; Decimals and dates are stringified
            user_id: Acting user

        Returns:
            Created AuditEvent
        """
        with self._lock:
            # Re-read the head so several trails over one store stay chained
            head = self._chain_head()
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=head['sequence'] + 1 if head else 1,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=head['current_hash'] if head else "",
                current_hash="",
                metadata=metadata or {},
                user_id=user_id
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())
            return event

    def get_events_for_entity(
        self,
        entity_type: str,
        entity_id: str,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        """Events for one entity in chain order, the most recent ``limit`` if given"""
        events = [
            AuditEvent.from_dict(data)
            for data in self.storage.find(
                self.table_name, {'entity_type': entity_type, 'entity_id': entity_id}
            )
        ]
        events.sort(key=lambda e: e.sequence)
        if limit:
            events = events[-limit:]
        return events

    def get_events_by_type(
        self,
        event_type: AuditEventType,
        limit: Optional[int] = None
    ) -> List[AuditEvent]:
        events = [e for e in self._load_events() if e.event_type == event_type]
        if limit:
            events = events[-limit:]
        return events

    def get_all_events(self) -> List[AuditEvent]:
        return self._load_events()

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify every event hash and the links between them

        Returns:
            Dictionary with ``valid``, ``total_events``, ``hash_errors`` and
            ``chain_breaks``
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = self._load_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def get_latest_hash(self) -> Optional[str]:
        head = self._chain_head()
        return head['current_hash'] if head else None
