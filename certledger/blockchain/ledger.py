"""
Certificate Ledger

Public surface of the certificate chain:
- bootstrap: one-time genesis creation
- add_certificate: mine and commit a certificate block
- verify_certificate: check one certificate hash against the chain
- get_user_certificates: list a user's certificates in issuance order
- validate_chain: full audit

Concurrency:
- Mining runs on a worker pool, bounded by attempt and time limits
- Commits are optimistic: the mined block is appended only if the stored
  chain is still the snapshot it was mined against; otherwise the ledger
  re-reads, re-mines and retries
- Reads operate on immutable snapshots and take no locks
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from typing import Any, List, Mapping, Optional, Union

from ..errors import ChainNotInitialized, CommitConflict, MiningTimeout, StorageCorrupt
from ..storage.chain_store import ChainStore
from .block import (
    Block, CertificatePayload, GENESIS_INDEX, GENESIS_PREV_HASH, now_millis
)
from .miner import (
    BlockMiner, DEFAULT_DIFFICULTY, DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT_SECONDS
)
from .validator import ChainAudit, ChainValidator, VerificationResult


logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

DEFAULT_MAX_COMMIT_ATTEMPTS = 32
DEFAULT_WORKER_THREADS = 4


PayloadLike = Union[CertificatePayload, Mapping[str, Any]]


def coerce_payload(payload: PayloadLike) -> CertificatePayload:
    """Accept a CertificatePayload or its camelCase wire dictionary."""
    if isinstance(payload, CertificatePayload):
        return payload
    if not isinstance(payload, Mapping):
        raise ValueError("Certificate payload must be a mapping")
    try:
        return CertificatePayload.from_dict(payload)
    except KeyError as e:
        raise ValueError(f"Certificate payload is missing field {e}") from None


class CertificateLedger:
    """
    Hash-chained, proof-of-work-protected certificate log.
    
    The ledger keeps no chain state of its own: every operation reads the
    store, so several ledger instances (or processes) may share one store.
    """
    
    def __init__(
        self,
        store: ChainStore,
        difficulty: int = DEFAULT_DIFFICULTY,
        max_mining_attempts: int = DEFAULT_MAX_ATTEMPTS,
        mining_timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        max_commit_attempts: int = DEFAULT_MAX_COMMIT_ATTEMPTS,
        worker_threads: int = DEFAULT_WORKER_THREADS,
        executor: Optional[ThreadPoolExecutor] = None
    ):
        """
        Initialize the ledger.
        
        Args:
            store: Chain repository
            difficulty: Leading zero hex characters required per block
            max_mining_attempts: Nonce budget per block
            mining_timeout_seconds: Wall-clock budget per block (None: unbounded)
            max_commit_attempts: Mine/commit rounds before CommitConflict
            worker_threads: Size of the mining pool if none is supplied
            executor: Optional externally owned mining pool
        """
        if max_commit_attempts < 1:
            raise ValueError("max_commit_attempts must be at least 1")
        self._store = store
        self._miner = BlockMiner(difficulty, max_mining_attempts, mining_timeout_seconds)
        self._validator = ChainValidator(difficulty)
        self.max_commit_attempts = max_commit_attempts
        self.mining_timeout_seconds = mining_timeout_seconds
        
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=worker_threads,
            thread_name_prefix="certledger-miner"
        )
    
    @classmethod
    def from_config(cls, store: ChainStore, config) -> 'CertificateLedger':
        """Build a ledger from a LedgerConfig."""
        return cls(
            store,
            difficulty=config.difficulty,
            max_mining_attempts=config.max_mining_attempts,
            mining_timeout_seconds=config.mining_timeout_seconds,
            max_commit_attempts=config.max_commit_attempts,
            worker_threads=config.worker_threads,
        )
    
    @property
    def difficulty(self) -> int:
        return self._miner.difficulty
    
    @property
    def store(self) -> ChainStore:
        return self._store
    
    # ========================================================================
    # Lifecycle
    # ========================================================================
    
    def close(self) -> None:
        """Shut down the mining pool if this ledger created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)
    
    def __enter__(self) -> 'CertificateLedger':
        return self
    
    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
    
    def is_bootstrapped(self) -> bool:
        return not self._store.read().is_empty
    
    def bootstrap(self) -> Block:
        """
        Create the genesis block if the store is empty.
        
        Safe to call repeatedly and concurrently: only the first caller's
        genesis is stored; everyone gets the stored genesis back.
        
        Returns:
            The chain's genesis block
        """
        snapshot = self._store.read()
        if not snapshot.is_empty:
            return snapshot.blocks[0]
        
        genesis = self._mine(
            GENESIS_INDEX, now_millis(), CertificatePayload.genesis(), GENESIS_PREV_HASH
        )
        if self._store.initialize(genesis):
            logger.info("Certificate chain bootstrapped: genesis %s", genesis.hash)
            return genesis
        
        logger.info("Certificate chain already bootstrapped by another writer")
        return self._store.get()[0]
    
    # ========================================================================
    # Issuance
    # ========================================================================
    
    def add_certificate(self, payload: PayloadLike) -> Block:
        """
        Mine a block for payload and append it to the chain.
        
        Args:
            payload: CertificatePayload or camelCase wire dictionary
            
        Returns:
            The persisted block
            
        Raises:
            ValueError: malformed payload
            ChainNotInitialized: bootstrap() has not run
            MiningTimeout: mining budget exhausted
            CommitConflict: lost every commit race
            StorageUnavailable, StorageCorrupt: store failures
        """
        payload = coerce_payload(payload)
        
        for attempt in range(1, self.max_commit_attempts + 1):
            snapshot = self._store.read()
            if snapshot.is_empty:
                raise ChainNotInitialized(
                    "Certificate chain has not been bootstrapped"
                )
            tail = snapshot.tail
            if not isinstance(tail.hash, str):
                raise StorageCorrupt(
                    "Chain tail has no usable hash to link to", key=self._store.key
                )
            
            block = self._mine(snapshot.length, now_millis(), payload, tail.hash)
            
            if self._store.append(snapshot, block):
                logger.info(
                    "Certificate added to blockchain: %s (block #%d, user %s)",
                    block.hash, block.index, payload.user_id
                )
                return block
            
            logger.warning(
                "Chain tail moved while mining block #%d (attempt %d/%d); retrying",
                block.index, attempt, self.max_commit_attempts
            )
        
        raise CommitConflict(
            f"Could not commit certificate after {self.max_commit_attempts} attempts",
            attempts=self.max_commit_attempts,
        )
    
    def _mine(
        self,
        index: int,
        timestamp: int,
        payload: CertificatePayload,
        previous_hash: str
    ) -> Block:
        """Run one mining job on the pool and wait for it."""
        cancel_event = threading.Event()
        future = self._executor.submit(
            self._miner.mine, index, timestamp, payload, previous_hash,
            cancel_event=cancel_event
        )
        try:
            return future.result(timeout=self.mining_timeout_seconds)
        except FuturesTimeout:
            cancel_event.set()
            future.cancel()
            raise MiningTimeout(
                f"Mining block #{index} did not finish within "
                f"{self.mining_timeout_seconds}s",
                elapsed=self.mining_timeout_seconds or 0.0,
            ) from None
    
    # ========================================================================
    # Queries
    # ========================================================================
    
    def get_chain(self) -> List[Block]:
        """Current chain snapshot as a list (empty before bootstrap)."""
        return list(self._store.read().blocks)
    
    def get_latest_block(self) -> Block:
        """Tail of the chain; raises ChainNotInitialized before bootstrap."""
        return self._store.read().tail
    
    def verify_certificate(self, certificate_hash: str) -> VerificationResult:
        """Verify a certificate hash against a fresh snapshot of the chain."""
        snapshot = self._store.read()
        result = self._validator.verify(snapshot.blocks, certificate_hash)
        if not result.is_valid:
            logger.info(
                "Certificate %s failed verification: %s",
                certificate_hash, result.message
            )
        return result
    
    def get_user_certificates(self, user_id: str) -> List[Block]:
        """Non-genesis blocks issued to user_id, in chain order."""
        snapshot = self._store.read()
        return [
            block for block in snapshot.blocks[1:]
            if block.certificate_data.user_id == user_id
        ]
    
    def validate_chain(self) -> ChainAudit:
        """Audit the whole chain, collecting every violation."""
        audit = self._validator.validate_chain(self._store.read().blocks)
        if not audit.is_valid:
            logger.warning("Chain audit found %d problem(s)", len(audit.errors))
        return audit
