"""
SHA-256 Hashing

Thin wrappers over the `cryptography` SHA-256 primitive used for block
hashing.

Components:
- sha256: raw 32-byte digest
- sha256_hex: lowercase 64-character hex digest
- sha256_string: digest of a text string
"""

from cryptography.hazmat.primitives import hashes


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash of data.
    
    Args:
        data: Input bytes to hash
        
    Returns:
        256-bit (32-byte) digest as bytes
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(data)
    return digest.finalize()


def sha256_hex(data: bytes) -> str:
    """
    Compute SHA-256 hash and return as hexadecimal string.
    
    Args:
        data: Input bytes to hash
        
    Returns:
        64-character hexadecimal string
    """
    return sha256(data).hex()


def sha256_string(text: str, encoding: str = 'utf-8') -> str:
    """Hex SHA-256 of a text string."""
    return sha256_hex(text.encode(encoding))

