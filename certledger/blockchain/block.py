"""
Certificate Block Structures

Immutable records stored in the certificate chain:
- CertificatePayload: what a certificate asserts (user, module, skill, level)
- Block: a payload bound to a chain position, previous hash and PoW nonce

Serialization uses the camelCase keys of the stored chain JSON, in a fixed
order, since the payload's JSON form is part of each block's hash preimage.

Blocks loaded from the store are taken as stored: only their shape is
checked on load. `Block.problems()` lists the field values a freshly
issued block could never have, so the validator can report them as
tampering instead of the load failing.
"""

import json
import numbers
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


# ============================================================================
# Constants
# ============================================================================

GENESIS_SENTINEL = "genesis"
GENESIS_PREV_HASH = "0"
GENESIS_INDEX = 0

PAYLOAD_KEYS = ('userId', 'moduleId', 'skill', 'level', 'score', 'issuedAt')
BLOCK_KEYS = ('index', 'timestamp', 'certificateData', 'previousHash', 'hash', 'nonce')


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and 'Z'."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def now_millis() -> int:
    """Current time as integer epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _parse_iso8601(value: str) -> datetime:
    # fromisoformat() does not accept a trailing 'Z' before Python 3.11
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


# ============================================================================
# Certificate Payload
# ============================================================================

@dataclass(frozen=True)
class CertificatePayload:
    """
    Data a certificate attests to.
    
    Eligibility (module completion, passing assessment) is decided by the
    caller before a payload is issued; this type only checks shape.
    
    `stored` holds the dictionary exactly as read from the store, extra
    keys and key order included. Stored payloads skip the issuance checks
    and hash as stored.
    """
    user_id: str
    module_id: str
    skill: str
    level: str
    issued_at: str
    score: Optional[Union[int, float]] = None
    stored: Optional[Dict[str, Any]] = field(default=None, compare=False, repr=False)
    
    def __post_init__(self):
        if self.stored is None:
            problems = self.problems()
            if problems:
                raise ValueError(problems[0])
    
    def problems(self) -> List[str]:
        """Field values an issued payload may not have, empty if none."""
        found = []
        for name in ('user_id', 'module_id', 'skill', 'level', 'issued_at'):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                found.append(f"{name} must be a non-empty string")
        
        score_present = self.score is not None
        if self.stored is not None:
            score_present = 'score' in self.stored
        if score_present:
            if isinstance(self.score, bool) or not isinstance(self.score, numbers.Real):
                found.append("score must be a number")
        
        if isinstance(self.issued_at, str) and self.issued_at \
                and self.issued_at != GENESIS_SENTINEL:
            try:
                _parse_iso8601(self.issued_at)
            except ValueError:
                found.append(
                    f"issued_at is not an ISO-8601 timestamp: {self.issued_at!r}"
                )
        
        if self.stored is not None:
            unexpected = [key for key in self.stored if key not in PAYLOAD_KEYS]
            if unexpected:
                found.append(f"unexpected field(s): {', '.join(unexpected)}")
        return found
    
    @classmethod
    def genesis(cls, issued_at: Optional[str] = None) -> 'CertificatePayload':
        """Sentinel payload carried by the genesis block."""
        return cls(
            user_id=GENESIS_SENTINEL,
            module_id=GENESIS_SENTINEL,
            skill=GENESIS_SENTINEL,
            level=GENESIS_SENTINEL,
            issued_at=issued_at or utc_now_iso(),
        )
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert payload to its wire dictionary (key order is significant)."""
        if self.stored is not None:
            return dict(self.stored)
        data: Dict[str, Any] = {
            'userId': self.user_id,
            'moduleId': self.module_id,
            'skill': self.skill,
            'level': self.level,
        }
        if self.score is not None:
            data['score'] = self.score
        data['issuedAt'] = self.issued_at
        return data
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CertificatePayload':
        """
        Create a new payload from request data.
        
        Raises:
            KeyError: a required key is missing
            ValueError: a field value is invalid
        """
        return cls(
            user_id=data['userId'],
            module_id=data['moduleId'],
            skill=data['skill'],
            level=data['level'],
            issued_at=data['issuedAt'],
            score=data.get('score'),
        )
    
    @classmethod
    def from_stored(cls, data: Dict[str, Any]) -> 'CertificatePayload':
        """Wrap a stored payload dictionary without checking its values."""
        return cls(
            user_id=data.get('userId'),
            module_id=data.get('moduleId'),
            skill=data.get('skill'),
            level=data.get('level'),
            issued_at=data.get('issuedAt'),
            score=data.get('score'),
            stored=dict(data),
        )
    
    def canonical_json(self) -> str:
        """Compact JSON form used inside the block hash preimage."""
        return json.dumps(self.to_dict(), separators=(',', ':'), ensure_ascii=False)


# ============================================================================
# Block Structure (Immutable)
# ============================================================================

@dataclass(frozen=True)
class Block:
    """
    One entry of the certificate chain.
    
    frozen=True: a block is created once by the miner and never mutated.
    Tests that simulate tampering use `with_changes()` to build a copy.
    """
    index: int
    timestamp: int
    certificate_data: CertificatePayload
    previous_hash: str
    hash: str
    nonce: int
    
    @property
    def is_genesis(self) -> bool:
        return self.index == GENESIS_INDEX
    
    def with_changes(self, **changes: Any) -> 'Block':
        """Return a copy of this block with some fields replaced."""
        return replace(self, **changes)
    
    def problems(self) -> List[str]:
        """Field values a mined block may not have, empty if none."""
        found = []
        for name in ('index', 'timestamp', 'nonce'):
            if not _is_count(getattr(self, name)):
                found.append(f"{name} must be a non-negative integer")
        for name in ('previous_hash', 'hash'):
            if not isinstance(getattr(self, name), str):
                found.append(f"{name} must be a string")
        found.extend(
            f"certificateData {problem}" for problem in self.certificate_data.problems()
        )
        return found
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert block to dictionary for serialization."""
        return {
            'index': self.index,
            'timestamp': self.timestamp,
            'certificateData': self.certificate_data.to_dict(),
            'previousHash': self.previous_hash,
            'hash': self.hash,
            'nonce': self.nonce,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Block':
        """
        Create block from its stored dictionary.
        
        Only the shape is checked: every block key must be present and
        certificateData must be an object. Field values are kept as stored.
        
        Raises:
            KeyError: a block key is missing
            TypeError: certificateData is not an object
        """
        missing = [key for key in BLOCK_KEYS if key not in data]
        if missing:
            raise KeyError(missing[0])
        payload = data['certificateData']
        if not isinstance(payload, dict):
            raise TypeError("certificateData must be an object")
        return cls(
            index=data['index'],
            timestamp=data['timestamp'],
            certificate_data=CertificatePayload.from_stored(payload),
            previous_hash=data['previousHash'],
            hash=data['hash'],
            nonce=data['nonce'],
        )
