"""
Security tests for the certificate ledger.

Tests specifically for tampering scenarios:
- Field edits on persisted blocks
- Forged blocks and re-mined histories
- Malformed stored data
"""

import json

import pytest

from certledger.blockchain.block import Block
from certledger.blockchain.miner import BlockMiner, compute_block_hash
from certledger.blockchain.validator import VerificationStatus
from certledger.errors import StorageCorrupt
from certledger.storage.chain_store import DEFAULT_CHAIN_KEY


def edit_stored_block(kv, position, edit):
    data = json.loads(kv.get(DEFAULT_CHAIN_KEY))
    edit(data[position])
    kv.set(DEFAULT_CHAIN_KEY, json.dumps(data))


class TestFieldTampering:
    """Any edited field of a persisted block is detected."""
    
    @pytest.mark.parametrize("edit", [
        lambda b: b.update(index=b['index'] + 10),
        lambda b: b.update(timestamp=b['timestamp'] + 1),
        lambda b: b.update(nonce=b['nonce'] + 1),
        lambda b: b.update(previousHash="0" * 64),
        lambda b: b['certificateData'].update(userId="attacker"),
        lambda b: b['certificateData'].update(score=100),
        lambda b: b['certificateData'].update(level="expert"),
        lambda b: b['certificateData'].update(issuedAt="2020-01-01T00:00:00.000Z"),
    ], ids=[
        'index', 'timestamp', 'nonce', 'previousHash',
        'userId', 'score', 'level', 'issuedAt',
    ])
    def test_edit_detected(self, ledger, kv, make_payload, edit):
        block = ledger.add_certificate(make_payload())
        edit_stored_block(kv, 1, edit)
        
        result = ledger.verify_certificate(block.hash)
        assert not result.is_valid
        assert result.status is VerificationStatus.TAMPERED
        assert not ledger.validate_chain().is_valid
    
    def test_removing_score_detected(self, ledger, kv, make_payload):
        """Dropping an optional field changes the hash preimage too."""
        block = ledger.add_certificate(make_payload(score=55))
        edit_stored_block(kv, 1, lambda b: b['certificateData'].pop('score'))
        assert ledger.verify_certificate(block.hash).status is VerificationStatus.TAMPERED
    
    def test_replaced_hash_not_found(self, ledger, kv, make_payload):
        """Rewriting the hash field hides the original certificate."""
        block = ledger.add_certificate(make_payload())
        edit_stored_block(kv, 1, lambda b: b.update(hash="00" + "a" * 62))
        
        assert ledger.verify_certificate(block.hash).status is VerificationStatus.NOT_FOUND
        forged = ledger.verify_certificate("00" + "a" * 62)
        assert forged.status is VerificationStatus.TAMPERED


class TestMalformedValues:
    """Edited values no issued block could carry are reported, never raised."""
    
    @pytest.mark.parametrize("edit", [
        lambda b: b.update(nonce=-1),
        lambda b: b.update(nonce=str(b['nonce'])),
        lambda b: b.update(index=str(b['index'])),
        lambda b: b['certificateData'].update(score="100"),
        lambda b: b['certificateData'].update(issuedAt="yesterday"),
        lambda b: b['certificateData'].update(userId=""),
        lambda b: b['certificateData'].pop('moduleId'),
    ], ids=[
        'negative-nonce', 'string-nonce', 'string-index',
        'string-score', 'bad-issuedAt', 'empty-userId', 'missing-moduleId',
    ])
    def test_edit_in_later_block(self, ledger, kv, make_payload, edit):
        """Only certificates at or after the edited block are affected."""
        first = ledger.add_certificate(make_payload())
        second = ledger.add_certificate(make_payload(user_id="user-2"))
        third = ledger.add_certificate(make_payload(user_id="user-3"))
        edit_stored_block(kv, 2, edit)
        
        assert ledger.verify_certificate(first.hash).is_valid
        assert ledger.verify_certificate(second.hash).status is VerificationStatus.TAMPERED
        result = ledger.verify_certificate(third.hash)
        assert result.status is VerificationStatus.CHAIN_COMPROMISED
        assert result.failed_index == 2
        
        assert len(ledger.get_user_certificates("user-1")) == 1
        assert not ledger.validate_chain().is_valid
    
    def test_null_hash(self, ledger, kv, make_payload):
        """A block whose hash is nulled out is no longer findable."""
        first = ledger.add_certificate(make_payload())
        second = ledger.add_certificate(make_payload())
        edit_stored_block(kv, 1, lambda b: b.update(hash=None))
        
        assert ledger.verify_certificate(first.hash).status is VerificationStatus.NOT_FOUND
        assert not ledger.verify_certificate(second.hash).is_valid
        audit = ledger.validate_chain()
        assert "Block 1 is malformed: hash must be a string" in audit.errors
        assert "Block 1 does not meet difficulty requirement" in audit.errors
    
    def test_string_nonce_same_hash(self, ledger, kv, make_payload):
        """A nonce retyped as a string keeps its hash and is still tampering."""
        block = ledger.add_certificate(make_payload())
        edit_stored_block(kv, 1, lambda b: b.update(nonce=str(b['nonce'])))
        
        result = ledger.verify_certificate(block.hash)
        assert result.status is VerificationStatus.TAMPERED
        audit = ledger.validate_chain()
        assert "Block 1 is malformed: nonce must be a non-negative integer" in audit.errors


class TestInjectedFields:
    """Keys added to a stored block are tampering and survive later appends."""
    
    def test_injected_payload_key_detected(self, ledger, kv, make_payload):
        block = ledger.add_certificate(make_payload())
        edit_stored_block(
            kv, 1, lambda b: b['certificateData'].update(expiresAt="2030-01-01T00:00:00Z")
        )
        
        result = ledger.verify_certificate(block.hash)
        assert not result.is_valid
        assert result.status is VerificationStatus.TAMPERED
        audit = ledger.validate_chain()
        assert "Block 1 has invalid hash" in audit.errors
        assert "Block 1 is malformed: certificateData unexpected field(s): expiresAt" \
            in audit.errors
    
    def test_injected_key_kept_by_next_append(self, ledger, kv, make_payload):
        """Issuing after an injection leaves the edited block as stored."""
        block = ledger.add_certificate(make_payload())
        edit_stored_block(
            kv, 1, lambda b: b['certificateData'].update(expiresAt="2030-01-01T00:00:00Z")
        )
        before = kv.get(DEFAULT_CHAIN_KEY)
        
        ledger.add_certificate(make_payload(user_id="user-2"))
        after = kv.get(DEFAULT_CHAIN_KEY)
        assert after.startswith(before[:-1])
        assert json.loads(after)[1]['certificateData']['expiresAt'] == "2030-01-01T00:00:00Z"
        assert ledger.verify_certificate(block.hash).status is VerificationStatus.TAMPERED


class TestForgery:
    """Attacks that keep individual blocks self-consistent."""
    
    def test_remined_block_breaks_next_link(self, ledger, kv, make_payload):
        """Re-mining an edited block leaves the next block's link dangling."""
        first = ledger.add_certificate(make_payload(level="basic"))
        second = ledger.add_certificate(make_payload(user_id="user-2"))
        
        forged = BlockMiner(difficulty=ledger.difficulty).mine(
            first.index, first.timestamp, make_payload(level="expert"), first.previous_hash
        )
        edit_stored_block(kv, 1, lambda b: b.update(forged.to_dict()))
        
        # The forged block itself is consistent with genesis
        assert ledger.verify_certificate(forged.hash).is_valid
        result = ledger.verify_certificate(second.hash)
        assert not result.is_valid
        assert result.message == "Chain link broken at block 2"
        assert result.failed_index == 2
    
    def test_appended_fake_block_below_difficulty(self, ledger, kv, make_payload):
        """A block appended without proof of work fails the audit."""
        tail = ledger.get_latest_block()
        payload = make_payload(user_id="forger")
        nonce = 0
        while True:
            digest = compute_block_hash(tail.index + 1, 1, payload, tail.hash, nonce)
            if not digest.startswith("00"):
                break
            nonce += 1
        fake = Block(tail.index + 1, 1, payload, tail.hash, digest, nonce)
        chain = ledger.get_chain() + [fake]
        ledger.store.set(chain)
        
        audit = ledger.validate_chain()
        assert f"Block {fake.index} does not meet difficulty requirement" in audit.errors
    
    def test_deleted_block_detected(self, ledger, kv, make_payload):
        """Removing a block from the middle breaks the chain."""
        ledger.add_certificate(make_payload())
        last = ledger.add_certificate(make_payload())
        data = json.loads(kv.get(DEFAULT_CHAIN_KEY))
        del data[1]
        kv.set(DEFAULT_CHAIN_KEY, json.dumps(data))
        
        assert not ledger.verify_certificate(last.hash).is_valid
        assert not ledger.validate_chain().is_valid


class TestMalformedStorage:
    """Garbage in the store is an error, not an empty ledger."""
    
    @pytest.mark.parametrize("raw", [
        '{"chain": []}',
        '[{"index": 0, "timestamp": 0}]',
        '[null]',
        '["DROP TABLE certifications"]',
    ])
    def test_malformed_chain(self, ledger, kv, raw):
        kv.set(DEFAULT_CHAIN_KEY, raw)
        with pytest.raises(StorageCorrupt):
            ledger.verify_certificate("abc")
    
    def test_invalid_payload_in_store(self, ledger, kv):
        """An invalid stored payload is tampering, not a storage error."""
        edit_stored_block(kv, 0, lambda b: b['certificateData'].update(userId=""))
        
        assert len(ledger.get_chain()) == 1
        audit = ledger.validate_chain()
        assert "Genesis block is malformed: certificateData user_id must be a non-empty string" \
            in audit.errors
    
    def test_unicode_payload_hash_stable(self, ledger, make_payload):
        """Non-ASCII payloads survive storage and still verify."""
        block = ledger.add_certificate(make_payload(skill="Médecine d'urgence"))
        assert ledger.verify_certificate(block.hash).is_valid
