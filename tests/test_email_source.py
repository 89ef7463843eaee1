import json
from datetime import datetime, timezone

import pytest

from mailcontext.models.core import Email
from mailcontext.services.email_source import EmailSource
from mailcontext.utils.errors import StorageError

from .conftest import OWNER, make_email


def test_failed_write_removes_temporary_file(tmp_path, monkeypatch):
    source = EmailSource(str(tmp_path / 'emails.json'))

    def broken_dump(*args, **kwargs):
        raise OSError('disk full')

    monkeypatch.setattr(json, 'dump', broken_dump)
    with pytest.raises(StorageError):
        source.upsert(make_email(1, 'Quote from Acme'))

    assert list(tmp_path.iterdir()) == []


def test_emails_survive_reload(tmp_path):
    path = str(tmp_path / 'emails.json')
    EmailSource(path).upsert(make_email(1, 'Quote from Acme', 'price 500'))

    reloaded = EmailSource(path)

    assert reloaded.get_email(1).subject == 'Quote from Acme'
    assert reloaded.owner_ids() == [OWNER]


def test_naive_dates_are_read_as_utc(email_source):
    naive = Email(id=2, owner_id=OWNER, subject='Re: quote', body='', sender='Beta',
                  sender_email='beta@example.com', date=datetime(2026, 3, 5, 9, 0))
    email_source.upsert(make_email(1, 'Quote from Acme', day=1))
    email_source.upsert(naive)

    assert naive.date == datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)
    assert [e.id for e in email_source.list_emails(OWNER)] == [2, 1]
