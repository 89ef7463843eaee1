"""
Parsers that validate classification responses into typed results.

Each parser takes decoded JSON and either returns a typed value or raises
SchemaViolation. Both snake_case and camelCase keys are accepted since models
drift between the two.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..models.core import (BestOption, CorrelationMetadata, CorrelationType, OrderStatus, OrderTimeline, PriceRange,
                           QuoteAnalysis, QuoteComparison, TimelineEvent, VendorComparison, build_metadata)
from ..utils.errors import SchemaViolation
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

DETECTABLE_TYPES = (CorrelationType.QUOTE, CorrelationType.INVOICE, CorrelationType.ORDER, CorrelationType.INQUIRY,
                    CorrelationType.RESPONSE)


@dataclass
class CorrelationProposal:
    """The classifier's claim that the new email belongs with ``related_email_id``."""
    related_email_id: int
    correlation_type: CorrelationType
    subject: str
    confidence: float
    metadata: CorrelationMetadata


def _get(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(',', '').strip().lstrip('£$€').strip()
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _require_dict(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise SchemaViolation(f'{what} must be an object, got {type(value).__name__}')
    return value


def _require_text(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise SchemaViolation(f'{what} must be a non-empty string')
    return value.strip()


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def parse_proposal(data: Any) -> CorrelationProposal:
    data = _require_dict(data, 'correlation')

    related = _get(data, 'related_email_id', 'relatedEmailId')
    if isinstance(related, bool):
        raise SchemaViolation('related_email_id must be an integer')
    try:
        related_email_id = int(related)
    except (TypeError, ValueError):
        raise SchemaViolation(f'related_email_id must be an integer, got {related!r}')

    try:
        correlation_type = CorrelationType(str(_get(data, 'correlation_type', 'correlationType', default='')).lower())
    except ValueError:
        raise SchemaViolation(f'Unknown correlation type: {_get(data, "correlation_type", "correlationType")!r}')
    if correlation_type not in DETECTABLE_TYPES:
        raise SchemaViolation(f'Correlation type {correlation_type.value} cannot be proposed automatically')

    confidence = _number(data.get('confidence'))
    if confidence is None:
        raise SchemaViolation('confidence must be a number')
    confidence = min(max(confidence, 0.0), 1.0)

    metadata = data.get('metadata')
    return CorrelationProposal(related_email_id=related_email_id,
                               correlation_type=correlation_type,
                               subject=_require_text(data.get('subject'), 'subject'),
                               confidence=confidence,
                               metadata=build_metadata(correlation_type, metadata if isinstance(metadata, dict) else None))


def parse_proposals(data: Any) -> List[CorrelationProposal]:
    """Parse a ``{"correlations": [...]}`` response.

    A malformed envelope raises SchemaViolation; a malformed entry is skipped.
    """
    if isinstance(data, dict):
        items = data.get('correlations', [])
    elif isinstance(data, list):
        items = data
    else:
        raise SchemaViolation(f'Expected object with correlations, got {type(data).__name__}')

    if not isinstance(items, list):
        raise SchemaViolation('correlations must be a list')

    proposals = []
    for item in items:
        try:
            proposals.append(parse_proposal(item))
        except SchemaViolation as e:
            logger.warning(f'Skipping malformed correlation proposal: {e}')
    return proposals


def parse_quote_analysis(data: Any) -> QuoteAnalysis:
    data = _require_dict(data, 'quote analysis')

    best = _require_dict(_get(data, 'best_option', 'bestOption'), 'best_option')
    best_option = BestOption(vendor=_require_text(best.get('vendor'), 'best_option.vendor'),
                             price=_number(best.get('price')),
                             reason=str(best.get('reason') or '').strip())

    comparison = _get(data, 'comparison', default={})
    comparison = comparison if isinstance(comparison, dict) else {}

    vendors = []
    for entry in comparison.get('vendors') or []:
        if not isinstance(entry, dict) or not _get(entry, 'name', 'vendor'):
            continue
        vendors.append(VendorComparison(name=str(_get(entry, 'name', 'vendor')).strip(),
                                        price=_number(entry.get('price')),
                                        pros=_string_list(entry.get('pros')),
                                        cons=_string_list(entry.get('cons')),
                                        delivery_time=_get(entry, 'delivery_time', 'deliveryTime'),
                                        warranty=entry.get('warranty')))

    raw_range = _get(comparison, 'price_range', 'priceRange')
    low = high = None
    if isinstance(raw_range, dict):
        low, high = _number(raw_range.get('min')), _number(raw_range.get('max'))
    if low is None or high is None:
        prices = [v.price for v in vendors if v.price is not None]
        if not prices:
            raise SchemaViolation('comparison.price_range is missing and no vendor prices were given')
        low, high = min(prices), max(prices)
    if low > high:
        low, high = high, low

    return QuoteAnalysis(best_option=best_option,
                         comparison=QuoteComparison(price_range=PriceRange(min=low, max=high), vendors=vendors),
                         recommendation=_require_text(data.get('recommendation'), 'recommendation'))


def parse_order_timeline(data: Any) -> OrderTimeline:
    data = _require_dict(data, 'order timeline')

    try:
        status = OrderStatus(str(_get(data, 'order_status', 'orderStatus', default='')).strip().lower())
    except ValueError:
        raise SchemaViolation(f'Unknown order status: {_get(data, "order_status", "orderStatus")!r}')

    events = data.get('timeline')
    if not isinstance(events, list):
        raise SchemaViolation('timeline must be a list')

    timeline = []
    for entry in events:
        if not isinstance(entry, dict) or not entry.get('event'):
            continue
        timeline.append(TimelineEvent(date=str(entry.get('date') or ''),
                                      event=str(entry['event']).strip(),
                                      details=str(entry.get('details') or '').strip()))

    return OrderTimeline(order_status=status,
                         timeline=timeline,
                         next_action=_require_text(_get(data, 'next_action', 'nextAction'), 'next_action'),
                         total_value=_number(_get(data, 'total_value', 'totalValue')))
