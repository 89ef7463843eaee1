import pytest

from mailcontext.models.core import CorrelationType, OrderMetadata, ThreadMetadata
from mailcontext.services.schemas import parse_proposals, parse_quote_analysis
from mailcontext.utils.errors import SchemaViolation
from mailcontext.utils.json_utils import clean_json_response


def test_proposal_metadata_follows_correlation_type():
    proposals = parse_proposals({
        'correlations': [
            {'relatedEmailId': '3', 'correlationType': 'INVOICE', 'subject': 'Invoice', 'confidence': '0.7',
             'metadata': {'price': '1,250.50', 'vendor': 'Acme', 'reference': 'INV-9', 'colour': 'red'}},
            {'related_email_id': 4, 'correlation_type': 'inquiry', 'subject': 'Question', 'confidence': 0.4,
             'metadata': {'product': 'tiles'}},
        ]
    })

    invoice, inquiry = proposals
    assert invoice.related_email_id == 3
    assert invoice.correlation_type == CorrelationType.INVOICE
    assert invoice.metadata == OrderMetadata(amount=1250.5, vendor='Acme', reference='INV-9')
    assert inquiry.metadata == ThreadMetadata(topic='tiles')


def test_bare_list_is_accepted_and_bad_entries_dropped():
    proposals = parse_proposals([
        {'related_email_id': 1, 'correlation_type': 'quote', 'subject': 'Quotes', 'confidence': -3},
        {'related_email_id': 2, 'correlation_type': 'quote', 'subject': '', 'confidence': 0.5},
        'not a proposal',
    ])

    assert len(proposals) == 1
    assert proposals[0].confidence == 0.0


@pytest.mark.parametrize('payload', ['correlations', 42, {'correlations': {'related_email_id': 1}}])
def test_malformed_envelope_is_a_schema_violation(payload):
    with pytest.raises(SchemaViolation):
        parse_proposals(payload)


def test_quote_analysis_requires_best_option():
    with pytest.raises(SchemaViolation):
        parse_quote_analysis({'comparison': {'price_range': {'min': 1, 'max': 2}}, 'recommendation': 'x'})


def test_clean_json_response_strips_fences_and_prose():
    assert clean_json_response('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert clean_json_response('Here you go: {"a": [1, 2]} hope this helps') == '{"a": [1, 2]}'
    assert clean_json_response('  [1]  ') == '[1]'
