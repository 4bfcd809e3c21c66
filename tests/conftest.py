"""Shared fixtures for the certledger tests."""

import pytest

from certledger.blockchain.block import CertificatePayload
from certledger.blockchain.ledger import CertificateLedger
from certledger.storage.chain_store import ChainStore
from certledger.storage.kv import MemoryKeyValueStore


TEST_DIFFICULTY = 2


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return ChainStore(kv)


@pytest.fixture
def make_payload():
    """Factory for valid certificate payloads."""
    def _make(user_id="user-1", module_id="module-1", **overrides):
        fields = {
            'user_id': user_id,
            'module_id': module_id,
            'skill': "Emergency Medicine",
            'level': "advanced",
            'issued_at': "2024-05-01T12:00:00.000Z",
            'score': 92,
        }
        fields.update(overrides)
        return CertificatePayload(**fields)
    return _make


@pytest.fixture
def ledger(store):
    """A bootstrapped ledger over an in-memory store."""
    with CertificateLedger(store, difficulty=TEST_DIFFICULTY) as ledger:
        ledger.bootstrap()
        yield ledger
