"""
Ledger error types.

Infrastructure failures (store unreachable or corrupt, mining budget
exhausted, lost commit races) are raised. Integrity failures found while
verifying (not found, tampered, broken links) are never raised; they are
reported through `VerificationResult` / `ChainAudit`.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all certificate ledger errors."""
    pass


# ============================================================================
# Storage
# ============================================================================

class StorageError(LedgerError):
    """Base class for chain storage failures."""
    pass


class StorageUnavailable(StorageError):
    """The key-value collaborator could not be read or written."""
    pass


class StorageCorrupt(StorageError):
    """A stored chain value is present but cannot be parsed."""
    
    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class ChainNotInitialized(StorageError):
    """The chain key is empty; `bootstrap()` must run first."""
    pass


# ============================================================================
# Mining / commit
# ============================================================================

class MiningTimeout(LedgerError):
    """Proof-of-work search exceeded its attempt or time budget."""
    
    def __init__(self, message: str, attempts: int = 0, elapsed: float = 0.0):
        super().__init__(message)
        self.attempts = attempts
        self.elapsed = elapsed


class CommitConflict(LedgerError):
    """Every compare-and-swap attempt lost to a concurrent writer."""
    
    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


# ============================================================================
# Caller input
# ============================================================================

class InvalidRequest(LedgerError):
    """A caller request is missing required fields or is malformed."""
    pass
