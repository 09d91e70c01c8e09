"""
Audit Trail Module

Hash-chained immutable audit log with SHA-256 for tamper detection.
Every loan state change and payment is logged here, inside the same
storage transaction as the change itself. Each entity carries its own
chain, so operations on different loans never contend for a chain head.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
from decimal import Decimal
import uuid

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of audit events"""
    LOAN_CREATED = "loan_created"
    LOAN_APPROVED = "loan_approved"
    LOAN_REJECTED = "loan_rejected"
    LOAN_ACTIVATED = "loan_activated"
    SCHEDULE_GENERATED = "schedule_generated"
    PAYMENT_RECORDED = "payment_recorded"
    LOAN_COMPLETED = "loan_completed"
    LOAN_DEFAULTED = "loan_defaulted"


@dataclass
class AuditEvent(StorageRecord):
    """
    Immutable audit event with hash chaining for tamper detection
    """
    event_type: AuditEventType
    entity_type: str
    entity_id: str
    sequence: int       # Position in this entity's chain, starting at 1
    previous_hash: str  # Hash of the entity's previous event
    current_hash: str   # SHA-256 hash of this event
    metadata: Dict[str, Any]
    user_id: Optional[str] = None

    def __post_init__(self):
        if self.metadata:
            self._serialize_metadata()

    def _serialize_metadata(self) -> None:
        """Convert metadata values to JSON-serializable format"""
        def convert_value(value):
            if isinstance(value, Decimal):
                return str(value)
            elif isinstance(value, (datetime, date)):
                return value.isoformat()
            elif isinstance(value, Enum):
                return value.value
            elif isinstance(value, dict):
                return {k: convert_value(v) for k, v in value.items()}
            elif isinstance(value, (list, tuple)):
                return [convert_value(v) for v in value]
            else:
                return value

        self.metadata = {k: convert_value(v) for k, v in self.metadata.items()}

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this event
        Hash includes all fields except current_hash to prevent circular reference
        """
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'sequence': self.sequence,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata
        }

        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that the current hash is correct"""
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['event_type'] = self.event_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['event_type'] = AuditEventType(data['event_type'])
        return cls(**data)


class AuditTrail:
    """
    Hash-chained audit trail for tamper detection

    Callers must serialise writes per entity (the loan lock registry does
    this for loans); the chain head is read from storage on every write.
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events", enabled: bool = True):
        self.storage = storage
        self.table_name = table_name
        self.enabled = enabled

    def _chain_head(self, entity_type: str, entity_id: str) -> Optional[AuditEvent]:
        events = self.get_events_for_entity(entity_type, entity_id)
        return events[-1] if events else None

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> Optional[AuditEvent]:
        """
        Log an audit event with hash chaining

        Args:
            event_type: Type of audit event
            entity_type: Type of entity being audited
            entity_id: ID of the entity
            metadata: Additional event-specific data
            user_id: ID of user who initiated the action

        Returns:
            Created AuditEvent, or None when auditing is disabled
        """
        if not self.enabled:
            return None

        now = datetime.now(timezone.utc)
        head = self._chain_head(entity_type, entity_id)

        event = AuditEvent(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            sequence=head.sequence + 1 if head else 1,
            previous_hash=head.current_hash if head else "",
            current_hash="",
            user_id=user_id,
            metadata=metadata or {}
        )
        event.current_hash = event.calculate_hash()

        self.storage.save(self.table_name, event.id, event.to_dict())
        return event

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        """Get all audit events for a specific entity in chain order"""
        events_data = self.storage.find(self.table_name, {
            'entity_type': entity_type,
            'entity_id': entity_id
        })
        events = [AuditEvent.from_dict(data) for data in events_data]
        events.sort(key=lambda x: x.sequence)
        return events

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of every entity chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        chains: Dict[tuple, List[AuditEvent]] = {}
        for data in self.storage.load_all(self.table_name):
            event = AuditEvent.from_dict(data)
            chains.setdefault((event.entity_type, event.entity_id), []).append(event)

        for events in chains.values():
            events.sort(key=lambda x: x.sequence)
            previous_hash = ""
            for expected_sequence, event in enumerate(events, start=1):
                result['total_events'] += 1
                if not event.verify_hash():
                    result['valid'] = False
                    result['hash_errors'].append({
                        'event_id': event.id,
                        'expected_hash': event.calculate_hash(),
                        'actual_hash': event.current_hash
                    })
                if event.previous_hash != previous_hash or event.sequence != expected_sequence:
                    result['valid'] = False
                    result['chain_breaks'].append({
                        'event_id': event.id,
                        'entity_id': event.entity_id,
                        'sequence': event.sequence,
                        'expected_previous_hash': previous_hash,
                        'actual_previous_hash': event.previous_hash
                    })
                previous_hash = event.current_hash

        return result
