# Storage Module
"""
Chain persistence:
- Key-value collaborators (in-memory, SQLite)
- ChainStore repository with compare-and-swap append
"""

# Lazy imports to avoid circular import issues
def __getattr__(name):
    """Lazy import of storage classes."""
    if name in ('KeyValueStore', 'MemoryKeyValueStore', 'SQLiteKeyValueStore'):
        from . import kv
        return getattr(kv, name)
    from . import chain_store
    return getattr(chain_store, name)

__all__ = [
    'KeyValueStore',
    'MemoryKeyValueStore',
    'SQLiteKeyValueStore',
    'ChainStore',
    'ChainSnapshot',
    'serialize_chain',
    'deserialize_chain',
    'DEFAULT_CHAIN_KEY',
]
