"""
certledger - tamper-evident certificate ledger.

A hash-chained, proof-of-work-protected append log used to issue and
verify professional certifications.
"""

__version__ = "1.0.0"
