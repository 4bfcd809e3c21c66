# Blockchain Module
"""
Certificate chain implementation including:
- Immutable certificate blocks
- SHA-256 chaining
- Proof of Work with bounded search
- Prefix verification and full-chain audit
- Ledger orchestration with optimistic commits
"""

_MODULES = {
    'Block': 'block',
    'CertificatePayload': 'block',
    'GENESIS_PREV_HASH': 'block',
    'GENESIS_SENTINEL': 'block',
    'BlockMiner': 'miner',
    'compute_block_hash': 'miner',
    'hash_meets_difficulty': 'miner',
    'DEFAULT_DIFFICULTY': 'miner',
    'ChainValidator': 'validator',
    'ChainAudit': 'validator',
    'VerificationResult': 'validator',
    'VerificationStatus': 'validator',
    'recompute_hash': 'validator',
    'CertificateLedger': 'ledger',
}


# Lazy imports to avoid circular import issues
def __getattr__(name):
    """Lazy import of blockchain classes."""
    if name not in _MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module
    module = import_module(f".{_MODULES[name]}", __name__)
    return getattr(module, name)

__all__ = list(_MODULES)
