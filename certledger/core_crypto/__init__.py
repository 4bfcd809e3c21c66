# Core Cryptography Module
"""
Core cryptographic helpers:
- SHA-256 hashing (backed by the `cryptography` package)
"""

from .sha256 import sha256, sha256_hex, sha256_string

__all__ = [
    'sha256',
    'sha256_hex',
    'sha256_string',
]
