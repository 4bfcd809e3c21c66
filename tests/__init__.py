# certledger Test Suite
"""
Test suite including:
- Unit tests (hashing, blocks, miner, validator, storage, config)
- Ledger and concurrency tests
- Integration tests (service layer, CLI)
- Security tests (tampering, corrupt storage)

Run with: pytest
"""
