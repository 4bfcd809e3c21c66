"""
Chain Store

Persistence of the whole chain as one JSON value under a single key.

`read()` returns an explicit snapshot: an empty snapshot means the chain
has never been bootstrapped; an unreachable or unparsable store raises.
There is no fallback to a fresh genesis chain, since that would hide data
loss.
"""

import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..blockchain.block import Block
from ..errors import ChainNotInitialized, StorageCorrupt, StorageUnavailable
from .kv import KeyValueStore


logger = logging.getLogger(__name__)

DEFAULT_CHAIN_KEY = "blockchain:certificates"


@dataclass(frozen=True)
class ChainSnapshot:
    """
    An immutable view of the chain as read from the store.
    
    `raw` is the exact stored string; appends are conditional on the store
    still holding it.
    """
    blocks: Tuple[Block, ...]
    raw: Optional[str]
    
    @property
    def is_empty(self) -> bool:
        return not self.blocks
    
    @property
    def length(self) -> int:
        return len(self.blocks)
    
    @property
    def tail(self) -> Block:
        if not self.blocks:
            raise ChainNotInitialized("Certificate chain has not been bootstrapped")
        return self.blocks[-1]


def _dump_block(block: Block) -> str:
    return json.dumps(block.to_dict(), separators=(',', ':'))


def serialize_chain(chain: Sequence[Block]) -> str:
    """Serialize a chain to its stored JSON form."""
    return '[' + ','.join(_dump_block(block) for block in chain) + ']'


def deserialize_chain(raw: str, key: Optional[str] = None) -> Tuple[Block, ...]:
    """
    Parse a stored chain.
    
    Only the structure is checked here. Field values are kept as stored
    and judged by the validator, so one edited block cannot make the
    whole chain unreadable.
    
    Raises:
        StorageCorrupt: value is not a non-empty JSON list of block objects
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise StorageCorrupt(f"Stored chain is not valid JSON: {e}", key=key) from e
    
    if not isinstance(data, list) or not data:
        raise StorageCorrupt("Stored chain must be a non-empty JSON list", key=key)
    
    blocks = []
    for position, item in enumerate(data):
        if not isinstance(item, dict):
            raise StorageCorrupt(f"Stored block {position} is not an object", key=key)
        try:
            blocks.append(Block.from_dict(item))
        except (KeyError, TypeError) as e:
            raise StorageCorrupt(
                f"Stored block {position} is malformed: {e!r}", key=key
            ) from e
    return tuple(blocks)


class ChainStore:
    """Repository for the certificate chain over a key-value collaborator."""
    
    def __init__(self, kv: KeyValueStore, key: str = DEFAULT_CHAIN_KEY):
        self._kv = kv
        self.key = key
    
    def read(self) -> ChainSnapshot:
        """
        Load the current chain.
        
        Returns:
            ChainSnapshot, empty if the key is absent
            
        Raises:
            StorageUnavailable: the collaborator failed
            StorageCorrupt: the stored value cannot be parsed
        """
        try:
            raw = self._kv.get(self.key)
        except Exception as e:
            logger.error("Failed to read chain key %r: %s", self.key, e)
            raise StorageUnavailable(f"Could not read chain from store: {e}") from e
        
        if raw is None:
            return ChainSnapshot(blocks=(), raw=None)
        
        blocks = deserialize_chain(raw, key=self.key)
        return ChainSnapshot(blocks=blocks, raw=raw)
    
    def get(self) -> List[Block]:
        """Return the chain, raising ChainNotInitialized if it is empty."""
        snapshot = self.read()
        if snapshot.is_empty:
            raise ChainNotInitialized("Certificate chain has not been bootstrapped")
        return list(snapshot.blocks)
    
    def set(self, chain: Sequence[Block]) -> None:
        """
        Overwrite the stored chain unconditionally.
        
        Administrative use only: this offers no protection against
        concurrent writers. Issuance goes through `append`.
        """
        if not chain:
            raise ValueError("Cannot store an empty chain")
        self._write(lambda: self._kv.set(self.key, serialize_chain(chain)))
    
    def append(self, snapshot: ChainSnapshot, block: Block) -> bool:
        """
        Append block if the store still holds exactly `snapshot`.
        
        The stored text of earlier blocks is kept byte for byte: the new
        block is spliced in before the closing bracket of the stored list.
        
        Returns:
            True if persisted, False if another writer got there first
        """
        tail = snapshot.tail
        if block.index != snapshot.length or block.previous_hash != tail.hash:
            raise ValueError(
                f"Block #{block.index} does not extend a snapshot of "
                f"{snapshot.length} block(s)"
            )
        head = snapshot.raw.rstrip()
        if not head.endswith(']'):
            raise StorageCorrupt("Stored chain must be a JSON list", key=self.key)
        new_raw = head[:-1].rstrip() + ',' + _dump_block(block) + ']'
        return self._write(
            lambda: self._kv.compare_and_set(self.key, snapshot.raw, new_raw)
        )
    
    def initialize(self, genesis: Block) -> bool:
        """Store a one-block chain if the key is still absent."""
        if not genesis.is_genesis:
            raise ValueError("Chain must be initialized with a genesis block")
        raw = serialize_chain([genesis])
        return self._write(lambda: self._kv.compare_and_set(self.key, None, raw))
    
    def _write(self, operation):
        try:
            return operation()
        except Exception as e:
            logger.error("Failed to write chain key %r: %s", self.key, e)
            raise StorageUnavailable(f"Could not write chain to store: {e}") from e
