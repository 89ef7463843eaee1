import pytest

from mailcontext.models.core import CorrelationType, QuoteMetadata
from mailcontext.services.candidates import RecentEmailsStrategy
from mailcontext.services.correlation_engine import CorrelationEngine
from mailcontext.services.correlation_log import CorrelationLog
from mailcontext.utils.errors import ClassificationError, ValidationError

from .conftest import OWNER, make_email


def quote_proposal(related_email_id, correlation_type='quote', **overrides):
    proposal = {
        'related_email_id': related_email_id,
        'correlation_type': correlation_type,
        'subject': 'Oak flooring quotes',
        'confidence': 0.9,
        'metadata': {'price': 420, 'vendor': 'Beta', 'product': 'oak flooring'},
    }
    proposal.update(overrides)
    return proposal


@pytest.fixture
def seeded(email_source):
    e1 = email_source.upsert(make_email(1, 'Quote from Acme - £500', 'Oak flooring, 500 GBP', sender='Acme', day=1))
    e2 = email_source.upsert(make_email(2, 'Quote from Beta - £420', 'Oak flooring, 420 GBP', sender='Beta', day=2))
    e3 = email_source.upsert(make_email(3, 'Re: flooring order, thanks', 'Thanks!', sender='Carol', day=3))
    return e1, e2, e3


def test_end_to_end_quote_scenario(engine, llm, correlation_log, seeded):
    e1, e2, e3 = seeded
    llm.queue({'correlations': [quote_proposal(1)]})

    records = engine.detect(e2, OWNER)

    group_id = records[0].group_id
    assert {r.email_id for r in records} == {1, 2}
    assert {r.email_id for r in correlation_log.members(group_id)} == {1, 2}

    llm.queue({
        'best_option': {'vendor': 'Beta', 'price': 420, 'reason': 'Cheapest for the same oak grade'},
        'comparison': {
            'price_range': {'min': 420, 'max': 500},
            'vendors': [
                {'name': 'Acme', 'price': 500, 'pros': ['fast delivery'], 'cons': ['pricier']},
                {'name': 'Beta', 'price': 420, 'pros': ['cheaper'], 'cons': []},
            ],
        },
        'recommendation': 'Go with Beta.',
    })
    analysis = engine.analyze(group_id)

    assert analysis.best_option.vendor == 'Beta'
    assert analysis.comparison.price_range.min == 420
    assert analysis.comparison.price_range.max == 500
    assert analysis.recommendation == 'Go with Beta.'
    assert all(3 not in group.email_ids for group in engine.list_groups(OWNER, with_analysis=False))


def test_new_group_is_born_with_two_members(engine, llm, correlation_log, seeded):
    _, e2, _ = seeded
    llm.queue({'correlations': [quote_proposal(1)]})

    records = engine.detect(e2, OWNER)

    assert len(records) == 2
    assert len({r.group_id for r in records}) == 1
    new_record, seed_record = records
    assert new_record.email_id == 2
    assert new_record.metadata == QuoteMetadata(price=420.0, vendor='Beta', product='oak flooring')
    assert seed_record.email_id == 1
    assert seed_record.metadata == QuoteMetadata()
    assert seed_record.confidence == new_record.confidence == 0.9


def test_existing_group_is_reused(engine, llm, correlation_log, email_source, seeded):
    _, e2, _ = seeded
    email_source.upsert(make_email(4, 'Quote from Delta', 'Oak flooring, 610 GBP', sender='Delta', day=4))
    group_id = engine.create_manual([1, 4], CorrelationType.QUOTE, 'Oak flooring quotes')
    llm.queue({'correlations': [quote_proposal(1)]})

    records = engine.detect(e2, OWNER)

    assert len(records) == 1
    assert records[0].email_id == 2
    assert records[0].group_id == group_id
    assert {r.email_id for r in correlation_log.members(group_id)} == {1, 2, 4}


def test_reuse_is_scoped_to_correlation_type(engine, llm, seeded):
    _, e2, _ = seeded
    quote_group = engine.create_manual([1, 3], CorrelationType.QUOTE, 'Quotes')
    llm.queue({'correlations': [quote_proposal(1, correlation_type='invoice')]})

    records = engine.detect(e2, OWNER)

    assert len(records) == 2
    assert records[0].group_id != quote_group
    assert records[0].correlation_type == CorrelationType.INVOICE


def test_repeated_detection_resolves_to_same_group(engine, llm, correlation_log, seeded):
    _, e2, _ = seeded
    llm.queue({'correlations': [quote_proposal(1)]})
    llm.queue({'correlations': [quote_proposal(1, confidence=0.8)]})

    first = engine.detect(e2, OWNER)
    second = engine.detect(e2, OWNER)

    group_id = first[0].group_id
    assert second[0].group_id == group_id
    # The log keeps the duplicate row; membership folds it away
    assert len(correlation_log.records(group_id)) == 3
    members = correlation_log.members(group_id)
    assert [m.email_id for m in members] == [2, 1]
    assert members[0].confidence == 0.8


def test_proposals_apply_in_order_within_one_call(engine, llm, correlation_log, seeded):
    _, _, e3 = seeded
    llm.queue({'correlations': [quote_proposal(1), quote_proposal(2)]})

    records = engine.detect(e3, OWNER)

    # Email 2 has no quote group of its own, so the second proposal mints another group
    assert [r.email_id for r in records] == [3, 1, 3, 2]
    assert records[0].group_id != records[2].group_id


def test_malformed_classifier_output_yields_no_records(engine, llm, correlation_log, seeded):
    _, e2, _ = seeded
    llm.queue('I think email 1 is related, probably.')

    assert engine.detect(e2, OWNER) == []
    assert correlation_log.group_ids_for_emails({1, 2}) == []


def test_invalid_proposals_are_skipped(engine, llm, seeded):
    _, e2, _ = seeded
    llm.queue({
        'correlations': [
            quote_proposal(99),  # not a candidate
            quote_proposal(2),  # the email itself
            quote_proposal(1, correlation_type='manual'),
            {'related_email_id': 'abc', 'correlation_type': 'quote', 'subject': 'x', 'confidence': 1},
            quote_proposal(1, confidence=7),
        ]
    })

    records = engine.detect(e2, OWNER)

    assert [r.email_id for r in records] == [2, 1]
    assert records[0].confidence == 1.0


def test_classifier_failure_propagates_and_writes_nothing(engine, llm, correlation_log, seeded):
    _, e2, _ = seeded
    llm.queue(ClassificationError('throttled'))

    with pytest.raises(ClassificationError):
        engine.detect(e2, OWNER)

    assert correlation_log.group_ids_for_emails({1, 2, 3}) == []


def test_no_candidates_means_no_classification_call(engine, llm, email_source):
    lonely = email_source.upsert(make_email(10, 'Only email', 'nothing else here'))

    assert engine.detect(lonely, OWNER) == []
    assert llm.calls == []


def test_candidate_pool_is_bounded_to_most_recent(correlation_log, email_source, classifier, analysis, llm):
    for day in range(1, 6):
        email_source.upsert(make_email(day, f'Email number {day}', 'body', day=day))
    engine = CorrelationEngine(correlation_log, email_source, classifier, RecentEmailsStrategy(email_source, 2), analysis)
    llm.queue({'correlations': []})

    engine.detect(email_source.get_email(5), OWNER)

    prompt = llm.calls[0]['prompt']
    assert 'ID: 4,' in prompt and 'ID: 3,' in prompt
    assert 'ID: 2,' not in prompt and 'ID: 1,' not in prompt
    assert 'ID: 5,' not in prompt


@pytest.mark.parametrize('email_ids', [[], [1], [1, 1]])
def test_manual_correlation_needs_two_emails(engine, correlation_log, email_ids):
    with pytest.raises(ValidationError):
        engine.create_manual(email_ids, CorrelationType.MANUAL, 'Too small')

    assert correlation_log.group_ids_for_emails({1}) == []


def test_manual_correlation_has_full_confidence(engine, correlation_log, tmp_path):
    group_id = engine.create_manual([5, 6, 7], 'order', 'Kitchen order')

    members = correlation_log.members(group_id)
    assert [m.email_id for m in members] == [5, 6, 7]
    assert all(m.confidence == 1.0 and m.correlation_type == CorrelationType.ORDER for m in members)

    reloaded = CorrelationLog(str(tmp_path / 'correlations.jsonl'))
    assert [m.email_id for m in reloaded.members(group_id)] == [5, 6, 7]


def test_list_groups_only_touches_owner_emails(engine, email_source, seeded):
    email_source.upsert(make_email(20, 'Someone else', 'x', owner_id='owner-b'))
    email_source.upsert(make_email(21, 'Someone else again', 'y', owner_id='owner-b'))
    mine = engine.create_manual([1, 2], CorrelationType.QUOTE, 'Mine')
    theirs = engine.create_manual([20, 21], CorrelationType.INQUIRY, 'Theirs')

    assert [g.group_id for g in engine.list_groups(OWNER, with_analysis=False)] == [mine]
    groups = engine.list_groups('owner-b')
    assert [g.group_id for g in groups] == [theirs]
    assert groups[0].analysis is None


def test_get_group_hydrates_members(engine, llm, seeded):
    group_id = engine.create_manual([1, 2], CorrelationType.INQUIRY, 'Flooring questions')

    group = engine.get_group(group_id)

    assert group.subject == 'Flooring questions'
    assert group.correlation_type == CorrelationType.INQUIRY
    assert [m.email.subject for m in group.members] == ['Quote from Acme - £500', 'Quote from Beta - £420']
    assert group.analysis is None
    assert engine.get_group('missing') is None
    assert llm.calls == []


def test_list_groups_survives_analysis_failure(engine, llm, seeded):
    engine.create_manual([1, 2], CorrelationType.QUOTE, 'Quotes')
    llm.queue(ClassificationError('down'))

    groups = engine.list_groups(OWNER)

    assert len(groups) == 1
    assert groups[0].analysis is None


def test_manual_correlation_rejects_non_numeric_ids(engine, correlation_log):
    with pytest.raises(ValidationError):
        engine.create_manual([1, 'abc'], CorrelationType.MANUAL, 'Typo')

    assert correlation_log.group_ids_for_emails({1}) == []
