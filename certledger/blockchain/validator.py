"""
Chain Validation

Recomputes block hashes and checks hash links to detect tampering.

- verify(): single certificate, walks the prefix from genesis to the
  target block and stops at the first problem
- validate_chain(): full audit, collects every violation

Integrity failures are results, not exceptions: callers must be able to
tell "certificate not found / tampered" apart from "ledger unavailable".
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .block import Block, GENESIS_INDEX, GENESIS_PREV_HASH
from .miner import (
    DEFAULT_DIFFICULTY, compute_block_hash, hash_meets_difficulty,
    validate_difficulty
)


# ============================================================================
# Messages
# ============================================================================

MSG_VALID = "Certificate is valid and verified on blockchain"
MSG_NOT_FOUND = "Certificate not found in blockchain"
MSG_TAMPERED = "Certificate hash is invalid (tampered)"
MSG_COMPROMISED = "Chain integrity compromised at block {index}"
MSG_LINK_BROKEN = "Chain link broken at block {index}"


class VerificationStatus(Enum):
    """Outcome of verifying one certificate hash."""
    
    VALID = "valid"
    NOT_FOUND = "not_found"
    TAMPERED = "tampered"
    CHAIN_COMPROMISED = "chain_compromised"
    CHAIN_LINK_BROKEN = "chain_link_broken"


@dataclass(frozen=True)
class VerificationResult:
    """Result of `ChainValidator.verify`."""
    is_valid: bool
    message: str
    status: VerificationStatus
    block: Optional[Block] = None
    failed_index: Optional[int] = None
    
    def to_dict(self):
        data = {'isValid': self.is_valid, 'message': self.message}
        if self.block is not None:
            data['block'] = self.block.to_dict()
        return data


@dataclass(frozen=True)
class ChainAudit:
    """Result of a full-chain audit."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    
    def to_dict(self):
        return {'isValid': self.is_valid, 'errors': list(self.errors)}


def recompute_hash(block: Block) -> str:
    """Hash a block's fields as stored, ignoring its `hash` field."""
    return compute_block_hash(
        block.index,
        block.timestamp,
        block.certificate_data,
        block.previous_hash,
        block.nonce
    )


# ============================================================================
# Validator
# ============================================================================

class ChainValidator:
    """Read-only integrity checks over a loaded chain snapshot."""
    
    def __init__(self, difficulty: int = DEFAULT_DIFFICULTY):
        self.difficulty = validate_difficulty(difficulty)
    
    @staticmethod
    def recompute_hash(block: Block) -> str:
        return recompute_hash(block)
    
    def verify(self, chain: Sequence[Block], target_hash: str) -> VerificationResult:
        """
        Verify one certificate by its block hash.
        
        Args:
            chain: Loaded chain snapshot
            target_hash: Hash the caller was given at issuance
            
        Returns:
            VerificationResult; is_valid is True only if the block exists,
            its hash recomputes, and every block from genesis to it is
            well-formed, self-consistent and correctly linked.
        """
        position = None
        for i, candidate in enumerate(chain):
            if candidate.hash == target_hash:
                position = i
                break
        
        if position is None:
            return VerificationResult(
                is_valid=False,
                message=MSG_NOT_FOUND,
                status=VerificationStatus.NOT_FOUND,
            )
        
        block = chain[position]
        if block.problems() or recompute_hash(block) != block.hash:
            return VerificationResult(
                is_valid=False,
                message=MSG_TAMPERED,
                status=VerificationStatus.TAMPERED,
                block=block,
                failed_index=position,
            )
        
        for i in range(1, position + 1):
            current = chain[i]
            previous = chain[i - 1]
            
            if (current.problems() or current.index != i
                    or recompute_hash(current) != current.hash):
                return VerificationResult(
                    is_valid=False,
                    message=MSG_COMPROMISED.format(index=i),
                    status=VerificationStatus.CHAIN_COMPROMISED,
                    block=block,
                    failed_index=i,
                )
            
            if current.previous_hash != previous.hash:
                return VerificationResult(
                    is_valid=False,
                    message=MSG_LINK_BROKEN.format(index=i),
                    status=VerificationStatus.CHAIN_LINK_BROKEN,
                    block=block,
                    failed_index=i,
                )
        
        return VerificationResult(
            is_valid=True,
            message=MSG_VALID,
            status=VerificationStatus.VALID,
            block=block,
        )
    
    def validate_chain(self, chain: Sequence[Block]) -> ChainAudit:
        """
        Audit the entire chain.
        
        Unlike `verify`, this does not stop at the first problem: every
        violation is reported, in block order. Indexes are checked against
        chain position.
        """
        errors: List[str] = []
        
        if not chain:
            return ChainAudit(is_valid=False, errors=["Chain is empty"])
        
        genesis = chain[0]
        for problem in genesis.problems():
            errors.append(f"Genesis block is malformed: {problem}")
        if genesis.index != GENESIS_INDEX:
            errors.append(f"Genesis block has index {genesis.index}, expected 0")
        if genesis.previous_hash != GENESIS_PREV_HASH:
            errors.append("Genesis block previous hash must be '0'")
        if recompute_hash(genesis) != genesis.hash:
            errors.append("Genesis block has invalid hash")
        if not hash_meets_difficulty(genesis.hash, self.difficulty):
            errors.append("Genesis block does not meet difficulty requirement")
        
        for i in range(1, len(chain)):
            current = chain[i]
            previous = chain[i - 1]
            
            for problem in current.problems():
                errors.append(f"Block {i} is malformed: {problem}")
            
            if current.index != i:
                errors.append(f"Block {i} has index {current.index!r}, expected {i}")
            
            if recompute_hash(current) != current.hash:
                errors.append(f"Block {i} has invalid hash")
            
            if current.previous_hash != previous.hash:
                errors.append(f"Block {i} link to previous block is broken")
            
            if not hash_meets_difficulty(current.hash, self.difficulty):
                errors.append(f"Block {i} does not meet difficulty requirement")
        
        return ChainAudit(is_valid=not errors, errors=errors)
