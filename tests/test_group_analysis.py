from mailcontext.models.core import CorrelationType, OrderStatus, QuoteAnalysis

from .conftest import make_email


def test_unknown_or_small_groups_have_no_analysis(analysis, engine, correlation_log, llm):
    assert analysis.analyze('does-not-exist') is None

    group_id = engine.create_manual([1, 2], CorrelationType.QUOTE, 'Quotes')
    # Neither email can be hydrated
    assert analysis.analyze(group_id) is None
    assert llm.calls == []


def test_quote_analysis_accepts_camel_case_and_derives_price_range(analysis, engine, email_source, llm):
    email_source.upsert(make_email(1, 'Quote from Acme', 'Oak flooring 500', sender='Acme', day=1))
    email_source.upsert(make_email(2, 'Quote from Beta', 'Oak flooring 420, 10 year warranty', sender='Beta', day=2))
    group_id = engine.create_manual([1, 2], CorrelationType.QUOTE, 'Oak flooring')
    llm.queue('```json\n{"bestOption": {"vendor": "Beta", "price": "£420", "reason": "warranty"},'
              ' "comparison": {"vendors": [{"name": "Acme", "price": 500}, {"name": "Beta", "price": 420,'
              ' "warranty": "10 years", "deliveryTime": "2 weeks"}]},'
              ' "recommendation": "Beta gives the longer warranty for less."}\n```')

    result = analysis.analyze(group_id)

    assert isinstance(result, QuoteAnalysis)
    assert result.best_option.price == 420.0
    assert (result.comparison.price_range.min, result.comparison.price_range.max) == (420.0, 500.0)
    assert result.comparison.vendors[1].delivery_time == '2 weeks'
    assert 'Quote from Acme' in llm.calls[0]['prompt']
    assert 'Oak flooring' in llm.calls[0]['prompt']


def test_quote_analysis_schema_violation_is_no_analysis(analysis, engine, email_source, llm):
    email_source.upsert(make_email(1, 'Quote A', 'a'))
    email_source.upsert(make_email(2, 'Quote B', 'b'))
    group_id = engine.create_manual([1, 2], CorrelationType.QUOTE, 'Quotes')
    llm.queue({'best_option': {'vendor': 'A', 'price': 1}, 'comparison': {'price_range': {'min': 1, 'max': 2}}})

    assert analysis.analyze(group_id) is None


def test_order_timeline_lists_emails_oldest_first(analysis, engine, email_source, llm):
    email_source.upsert(make_email(7, 'Invoice INV-7 for kitchen units', 'Total due 2400', sender='Acme', day=9))
    email_source.upsert(make_email(5, 'Order confirmed: kitchen units', 'Ships next week', sender='Acme', day=2))
    email_source.upsert(make_email(6, 'Your kitchen units have shipped', 'Tracking 123', sender='Acme', day=5))
    group_id = engine.create_manual([7, 5, 6], CorrelationType.INVOICE, 'Kitchen units')
    llm.queue({
        'orderStatus': 'Shipped',
        'timeline': [
            {'date': '2026-03-02', 'event': 'Order confirmed'},
            {'date': '2026-03-05', 'event': 'Shipped', 'details': 'Tracking 123'},
            {'date': '2026-03-09', 'event': 'Invoice received'},
        ],
        'nextAction': 'Pay invoice INV-7 once the delivery arrives.',
        'totalValue': 2400,
    })

    result = analysis.analyze(group_id)

    assert result.order_status == OrderStatus.SHIPPED
    assert [e.event for e in result.timeline] == ['Order confirmed', 'Shipped', 'Invoice received']
    assert result.total_value == 2400.0
    prompt = llm.calls[0]['prompt']
    assert prompt.index('Order confirmed') < prompt.index('have shipped') < prompt.index('Invoice INV-7')
    assert result.to_dict()['order_status'] == 'shipped'


def test_unknown_order_status_is_no_analysis(analysis, engine, email_source, llm):
    email_source.upsert(make_email(1, 'Order placed', 'a'))
    email_source.upsert(make_email(2, 'Order update', 'b'))
    group_id = engine.create_manual([1, 2], CorrelationType.ORDER, 'Order')
    llm.queue({'order_status': 'lost at sea', 'timeline': [], 'next_action': 'Call them'})

    assert analysis.analyze(group_id) is None


def test_inquiry_groups_are_not_analyzed(analysis, engine, email_source, llm):
    email_source.upsert(make_email(1, 'Question about delivery', 'a'))
    email_source.upsert(make_email(2, 'Re: Question about delivery', 'b'))
    group_id = engine.create_manual([1, 2], CorrelationType.INQUIRY, 'Delivery question')

    assert analysis.analyze(group_id) is None
    assert llm.calls == []
