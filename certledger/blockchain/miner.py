"""
Proof of Work Miner

Finds a nonce whose block hash starts with `difficulty` zero hex digits.

- SHA-256 over index, timestamp, payload JSON, previous hash and nonce
- Adjustable difficulty (leading zero hex characters)
- Bounded search: attempt limit, wall-clock limit, cooperative cancel

The miner is pure CPU work and never touches storage.
"""

import logging
import threading
import time
from typing import Optional

from ..core_crypto.sha256 import sha256_string
from ..errors import MiningTimeout
from .block import Block, CertificatePayload


logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

DEFAULT_DIFFICULTY = 2  # Leading zero hex characters (~256 expected attempts)
MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 64  # Length of a hex SHA-256 digest
DEFAULT_MAX_ATTEMPTS = 5_000_000
DEFAULT_TIMEOUT_SECONDS = 30.0
CHECK_INTERVAL = 1024  # Attempts between clock / cancel checks


def validate_difficulty(difficulty: int) -> int:
    """Return difficulty unchanged, or raise ValueError if out of range."""
    if isinstance(difficulty, bool) or not isinstance(difficulty, int):
        raise ValueError("Difficulty must be an integer")
    if not MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY:
        raise ValueError(
            f"Difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}"
        )
    return difficulty


def compute_block_hash(
    index: int,
    timestamp: int,
    payload: CertificatePayload,
    previous_hash: str,
    nonce: int
) -> str:
    """
    Compute the hex hash of a block's fields.
    
    The preimage is the plain concatenation of each field's string form,
    in order: index, timestamp, payload JSON, previous hash, nonce.
    Stored blocks may carry values of any JSON type, so every field goes
    through str().
    """
    preimage = (
        str(index) +
        str(timestamp) +
        payload.canonical_json() +
        str(previous_hash) +
        str(nonce)
    )
    return sha256_string(preimage)


def hash_meets_difficulty(block_hash: str, difficulty: int) -> bool:
    """Check if a hex hash starts with `difficulty` zero characters."""
    return isinstance(block_hash, str) and block_hash.startswith('0' * difficulty)


# ============================================================================
# Block Miner
# ============================================================================

class BlockMiner:
    """
    Proof of Work search with an explicit budget.
    
    Difficulty is an explicit configuration parameter. The default of 2
    zero hex digits costs ~256 hashes per block: it makes edits detectable
    through the hash links, not expensive to forge.
    """
    
    def __init__(
        self,
        difficulty: int = DEFAULT_DIFFICULTY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS
    ):
        """
        Initialize the miner.
        
        Args:
            difficulty: Leading zero hex characters required (1-64)
            max_attempts: Nonces to try before giving up
            timeout_seconds: Wall-clock budget per block, None for no limit
        """
        self.difficulty = validate_difficulty(difficulty)
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds
    
    def mine(
        self,
        index: int,
        timestamp: int,
        payload: CertificatePayload,
        previous_hash: str,
        difficulty: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> Block:
        """
        Mine a block (find a valid nonce).
        
        Args:
            index: Block index
            timestamp: Block timestamp (epoch millis)
            payload: Certificate payload
            previous_hash: Hash of the block being extended
            difficulty: Override for this block, defaults to the miner's
            cancel_event: If set while searching, the search stops
            
        Returns:
            The first block (lowest nonce from 0) meeting the difficulty
            
        Raises:
            MiningTimeout: attempt/time budget exhausted or search cancelled
        """
        if difficulty is None:
            difficulty = self.difficulty
        else:
            validate_difficulty(difficulty)
        
        target = '0' * difficulty
        started = time.monotonic()
        deadline = None
        if self.timeout_seconds is not None:
            deadline = started + self.timeout_seconds
        
        # Everything but the nonce is fixed for the whole search
        prefix = (
            str(index) +
            str(timestamp) +
            payload.canonical_json() +
            previous_hash
        )
        
        for nonce in range(self.max_attempts):
            block_hash = sha256_string(prefix + str(nonce))
            if block_hash.startswith(target):
                logger.debug(
                    "Mined block #%d after %d attempts", index, nonce + 1
                )
                return Block(
                    index=index,
                    timestamp=timestamp,
                    certificate_data=payload,
                    previous_hash=previous_hash,
                    hash=block_hash,
                    nonce=nonce,
                )
            
            if nonce % CHECK_INTERVAL == CHECK_INTERVAL - 1:
                if cancel_event is not None and cancel_event.is_set():
                    raise MiningTimeout(
                        f"Mining block #{index} cancelled after {nonce + 1} attempts",
                        attempts=nonce + 1,
                        elapsed=time.monotonic() - started,
                    )
                if deadline is not None and time.monotonic() > deadline:
                    raise MiningTimeout(
                        f"Mining block #{index} exceeded {self.timeout_seconds}s "
                        f"after {nonce + 1} attempts",
                        attempts=nonce + 1,
                        elapsed=time.monotonic() - started,
                    )
        
        raise MiningTimeout(
            f"Failed to find valid nonce after {self.max_attempts} attempts",
            attempts=self.max_attempts,
            elapsed=time.monotonic() - started,
        )
