# Integration Module
"""
Request/response layer exposing the certificate ledger to callers
(issuance, verification, listing and audit endpoints).
"""

# Lazy imports to avoid circular import issues
def __getattr__(name):
    """Lazy import of service classes."""
    from . import certificate_service
    return getattr(certificate_service, name)

__all__ = [
    'CertificateService',
    'blockchain_data',
]
