"""
Core data models for memory documents, emails and correlation groups.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..utils.timestamp_utils import to_datetime, to_iso


class DocumentKind(str, Enum):
    """Kind of artifact a memory document was built from."""
    EMAIL = 'email'
    NOTE = 'note'
    CONVERSATION = 'conversation'


class CorrelationType(str, Enum):
    """Kind of business thread a correlation record asserts."""
    QUOTE = 'quote'
    INVOICE = 'invoice'
    ORDER = 'order'
    INQUIRY = 'inquiry'
    RESPONSE = 'response'
    MANUAL = 'manual'


ORDER_TYPES = (CorrelationType.INVOICE, CorrelationType.ORDER)


@dataclass
class Email:
    """Raw email record handed over by the ingestion layer."""
    id: int
    owner_id: str
    subject: str
    body: str
    sender: str
    sender_email: str
    date: datetime
    category: Optional[str] = None

    def __post_init__(self):
        self.date = to_datetime(self.date)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['date'] = to_iso(self.date)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Email':
        return cls(id=int(data['id']),
                   owner_id=data['owner_id'],
                   subject=data.get('subject') or '',
                   body=data.get('body') or '',
                   sender=data.get('sender') or '',
                   sender_email=data.get('sender_email') or '',
                   date=to_datetime(data.get('date')),
                   category=data.get('category'))


@dataclass
class MemoryMetadata:
    kind: DocumentKind
    owner_id: str
    created_at: datetime
    source_email_id: Optional[int] = None
    subject: Optional[str] = None
    sender: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'kind': self.kind.value, 'owner_id': self.owner_id, 'created_at': to_iso(self.created_at)}
        for key in ('source_email_id', 'subject', 'sender', 'category'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemoryMetadata':
        return cls(kind=DocumentKind(data['kind']),
                   owner_id=data['owner_id'],
                   created_at=to_datetime(data.get('created_at')),
                   source_email_id=data.get('source_email_id'),
                   subject=data.get('subject'),
                   sender=data.get('sender'),
                   category=data.get('category'))


@dataclass
class MemoryDocument:
    """One embedded, searchable text artifact.

    The id is derived from (kind, source_id) so re-indexing the same source
    overwrites the previous document instead of adding a second one.
    """
    id: str
    text: str
    metadata: MemoryMetadata
    embedding: List[float]

    @staticmethod
    def make_id(kind: Union[DocumentKind, str], source_id: Union[str, int]) -> str:
        return f'{DocumentKind(kind).value}-{source_id}'

    @property
    def owner_id(self) -> str:
        return self.metadata.owner_id

    def to_dict(self, include_embedding: bool = True) -> Dict[str, Any]:
        data = {'id': self.id, 'text': self.text, 'metadata': self.metadata.to_dict()}
        if include_embedding:
            data['embedding'] = self.embedding
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemoryDocument':
        return cls(id=data['id'],
                   text=data['text'],
                   metadata=MemoryMetadata.from_dict(data['metadata']),
                   embedding=[float(v) for v in data.get('embedding', [])])


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    if isinstance(value, str):
        value = value.replace(',', '').lstrip('£$€ ')
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass
class QuoteMetadata:
    price: Optional[float] = None
    vendor: Optional[str] = None
    product: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuoteMetadata':
        return cls(price=_optional_float(data.get('price')),
                   vendor=_optional_str(data.get('vendor')),
                   product=_optional_str(data.get('product')),
                   notes=_optional_str(data.get('notes')))


@dataclass
class OrderMetadata:
    amount: Optional[float] = None
    vendor: Optional[str] = None
    reference: Optional[str] = None  # order or invoice number
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrderMetadata':
        return cls(amount=_optional_float(data.get('amount', data.get('price'))),
                   vendor=_optional_str(data.get('vendor')),
                   reference=_optional_str(data.get('reference')),
                   notes=_optional_str(data.get('notes')))


@dataclass
class ThreadMetadata:
    topic: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ThreadMetadata':
        return cls(topic=_optional_str(data.get('topic', data.get('product'))), notes=_optional_str(data.get('notes')))


@dataclass
class ManualMetadata:
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ManualMetadata':
        return cls(notes=_optional_str(data.get('notes')))


CorrelationMetadata = Union[QuoteMetadata, OrderMetadata, ThreadMetadata, ManualMetadata]

_METADATA_TYPES = {
    CorrelationType.QUOTE: QuoteMetadata,
    CorrelationType.INVOICE: OrderMetadata,
    CorrelationType.ORDER: OrderMetadata,
    CorrelationType.INQUIRY: ThreadMetadata,
    CorrelationType.RESPONSE: ThreadMetadata,
    CorrelationType.MANUAL: ManualMetadata,
}


def build_metadata(correlation_type: CorrelationType, data: Optional[Dict[str, Any]] = None) -> CorrelationMetadata:
    """Build the metadata variant for a correlation type. Unknown keys are dropped."""
    metadata_cls = _METADATA_TYPES[CorrelationType(correlation_type)]
    if not data:
        return metadata_cls()
    return metadata_cls.from_dict(data)


def metadata_to_dict(metadata: CorrelationMetadata) -> Dict[str, Any]:
    return {key: value for key, value in asdict(metadata).items() if value is not None}


@dataclass
class CorrelationRecord:
    """One membership edge: an email belongs to a group of a given type."""
    group_id: str
    email_id: int
    correlation_type: CorrelationType
    subject: str
    confidence: float
    metadata: CorrelationMetadata
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'group_id': self.group_id,
            'email_id': self.email_id,
            'correlation_type': self.correlation_type.value,
            'subject': self.subject,
            'confidence': self.confidence,
            'metadata': metadata_to_dict(self.metadata),
            'created_at': to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CorrelationRecord':
        correlation_type = CorrelationType(data['correlation_type'])
        return cls(group_id=data['group_id'],
                   email_id=int(data['email_id']),
                   correlation_type=correlation_type,
                   subject=data.get('subject') or '',
                   confidence=float(data.get('confidence', 0.0)),
                   metadata=build_metadata(correlation_type, data.get('metadata')),
                   created_at=to_datetime(data.get('created_at')))


@dataclass
class PriceRange:
    min: float
    max: float


@dataclass
class BestOption:
    vendor: str
    price: Optional[float]
    reason: str


@dataclass
class VendorComparison:
    name: str
    price: Optional[float] = None
    pros: List[str] = field(default_factory=list)
    cons: List[str] = field(default_factory=list)
    delivery_time: Optional[str] = None
    warranty: Optional[str] = None


@dataclass
class QuoteComparison:
    price_range: PriceRange
    vendors: List[VendorComparison] = field(default_factory=list)


@dataclass
class QuoteAnalysis:
    """Vendor comparison for a quote group."""
    best_option: BestOption
    comparison: QuoteComparison
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OrderStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    COMPLETED = 'completed'


@dataclass
class TimelineEvent:
    date: str
    event: str
    details: str = ''


@dataclass
class OrderTimeline:
    """Progress of an order or invoice group, oldest event first."""
    order_status: OrderStatus
    timeline: List[TimelineEvent]
    next_action: str
    total_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['order_status'] = self.order_status.value
        return data


GroupAnalysis = Union[QuoteAnalysis, OrderTimeline]


@dataclass
class GroupMember:
    record: CorrelationRecord
    email: Optional[Email]  # None when the source email is no longer available


@dataclass
class CorrelationGroup:
    """All records sharing a group id, hydrated with their emails. Never persisted."""
    group_id: str
    subject: str
    correlation_type: CorrelationType
    members: List[GroupMember]
    analysis: Optional[GroupAnalysis] = None

    @property
    def email_ids(self) -> List[int]:
        return [member.record.email_id for member in self.members]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'group_id': self.group_id,
            'subject': self.subject,
            'correlation_type': self.correlation_type.value,
            'emails': [{
                'email': member.email.to_dict() if member.email else None,
                'email_id': member.record.email_id,
                'confidence': member.record.confidence,
                'metadata': metadata_to_dict(member.record.metadata),
            } for member in self.members],
            'analysis': self.analysis.to_dict() if self.analysis else None,
        }
