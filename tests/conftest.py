import json
from datetime import datetime, timezone

import pytest

from mailcontext.models.core import Email
from mailcontext.services.candidates import RecentEmailsStrategy
from mailcontext.services.classification import ClassificationService
from mailcontext.services.correlation_engine import CorrelationEngine
from mailcontext.services.correlation_log import CorrelationLog
from mailcontext.services.email_source import EmailSource
from mailcontext.services.group_analysis import GroupAnalysisService
from mailcontext.services.memory_store import MemoryStore
from mailcontext.utils.config import CorrelationConfig
from mailcontext.utils.errors import EmbeddingError
from mailcontext.utils.hashing_embed import HashingEmbed
from mailcontext.utils.snapshot_store import OwnerSnapshotStore

OWNER = 'owner-a'


class FakeEmbed:
    """Returns pinned vectors for known texts, hashing vectors otherwise."""

    def __init__(self, vectors=None, dimension=3, fail_on=()):
        self.vectors = vectors or {}
        self.dimension = dimension
        self.fail_on = fail_on
        self.model_id = 'fake'
        self.calls = []
        self._fallback = HashingEmbed(dimension)

    def embed_document(self, text):
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError(f'embedding failed for {text!r}')
        if text in self.vectors:
            return list(self.vectors[text])
        return self._fallback.embed_document(text)

    def embed_query(self, text):
        return self.embed_document(text)


class FakeLLM:
    """Pops canned responses; an Exception instance is raised instead of returned."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.calls = []

    def queue(self, response):
        if not isinstance(response, (str, Exception)):
            response = json.dumps(response)
        self.responses.append(response)

    def generate_response(self, messages, system_prompt, max_tokens=None, temperature=None, stop_sequences=None):
        self.calls.append({'prompt': messages[0]['content'][0]['text'], 'system_prompt': system_prompt})
        if not self.responses:
            raise AssertionError('FakeLLM has no queued response')
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response, None


def make_email(email_id, subject, body='', sender='Someone', day=1, owner_id=OWNER, category=None):
    return Email(id=email_id,
                 owner_id=owner_id,
                 subject=subject,
                 body=body,
                 sender=sender,
                 sender_email=f'{sender.lower().replace(" ", ".")}@example.com',
                 date=datetime(2026, 3, day, 9, 0, tzinfo=timezone.utc),
                 category=category)


@pytest.fixture
def correlation_config():
    return CorrelationConfig(candidate_pool_size=50,
                             candidate_strategy='recent',
                             body_excerpt=500,
                             quote_excerpt=500,
                             timeline_excerpt=300)


@pytest.fixture
def email_source(tmp_path):
    return EmailSource(str(tmp_path / 'emails.json'))


@pytest.fixture
def embedder():
    return FakeEmbed()


@pytest.fixture
def memory_store(tmp_path, embedder, email_source):
    return MemoryStore(embedder, OwnerSnapshotStore(str(tmp_path / 'memory')), email_source)


@pytest.fixture
def correlation_log(tmp_path):
    return CorrelationLog(str(tmp_path / 'correlations.jsonl'))


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def classifier(llm):
    return ClassificationService(llm=llm)


@pytest.fixture
def analysis(correlation_log, email_source, classifier, correlation_config):
    return GroupAnalysisService(correlation_log, email_source, classifier, correlation_config)


@pytest.fixture
def engine(correlation_log, email_source, classifier, analysis, correlation_config):
    return CorrelationEngine(correlation_log=correlation_log,
                             email_source=email_source,
                             classifier=classifier,
                             candidate_strategy=RecentEmailsStrategy(email_source, correlation_config.candidate_pool_size),
                             analysis=analysis,
                             body_excerpt=correlation_config.body_excerpt)
