"""
Certificate Service

Caller-facing request/response shapes around the CertificateLedger, as
used by the issuance, verification and listing endpoints:

- issue:  {userId, moduleId, skill, level, score?, issuedAt?}
          -> {hash, blockIndex, timestamp, nonce}
- verify: {certificateHash}
          -> {verified, message, certificate?: {..., blockchainData}}
- list:   {userId} -> {certificates: [{hash, blockIndex, timestamp, data}]}
- audit:  -> {isValid, errors}

Eligibility checks and relational metadata stay with the caller; metadata
is pulled in through an optional lookup callable.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from ..blockchain.block import Block, CertificatePayload, utc_now_iso
from ..blockchain.ledger import CertificateLedger
from ..errors import InvalidRequest


logger = logging.getLogger(__name__)

MetadataLookup = Callable[[str], Optional[Mapping[str, Any]]]

REQUIRED_ISSUE_FIELDS = ('userId', 'moduleId', 'skill', 'level')


def blockchain_data(block: Block) -> Dict[str, Any]:
    """The block fields a caller stores next to certificate metadata."""
    return {
        'blockIndex': block.index,
        'timestamp': block.timestamp,
        'hash': block.hash,
        'nonce': block.nonce,
    }


def _require_mapping(request: Any) -> Mapping[str, Any]:
    if not isinstance(request, Mapping):
        raise InvalidRequest("Request body must be a JSON object")
    return request


class CertificateService:
    """Thin request layer over a CertificateLedger."""
    
    def __init__(
        self,
        ledger: CertificateLedger,
        metadata_lookup: Optional[MetadataLookup] = None
    ):
        """
        Args:
            ledger: The certificate ledger
            metadata_lookup: Maps a certificate hash to external metadata
                (owner name, module title, ...); None disables enrichment
        """
        self._ledger = ledger
        self._metadata_lookup = metadata_lookup
    
    def issue(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Record a certificate the caller has already decided to grant.
        
        Raises:
            InvalidRequest: missing or malformed fields
        """
        request = _require_mapping(request)
        missing = [name for name in REQUIRED_ISSUE_FIELDS if not request.get(name)]
        if missing:
            raise InvalidRequest(f"Missing required fields: {', '.join(missing)}")
        
        try:
            payload = CertificatePayload(
                user_id=request['userId'],
                module_id=request['moduleId'],
                skill=request['skill'],
                level=request['level'],
                issued_at=request.get('issuedAt') or utc_now_iso(),
                score=request.get('score'),
            )
        except ValueError as e:
            raise InvalidRequest(str(e)) from e
        
        block = self._ledger.add_certificate(payload)
        return {
            'hash': block.hash,
            'blockIndex': block.index,
            'timestamp': block.timestamp,
            'nonce': block.nonce,
        }
    
    def verify(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Verify a certificate hash.
        
        Raises:
            InvalidRequest: certificateHash missing or empty
        """
        request = _require_mapping(request)
        certificate_hash = request.get('certificateHash')
        if not certificate_hash or not isinstance(certificate_hash, str):
            raise InvalidRequest("Certificate hash is required")
        
        result = self._ledger.verify_certificate(certificate_hash)
        if not result.is_valid:
            return {'verified': False, 'message': result.message}
        
        metadata: Dict[str, Any] = {}
        if self._metadata_lookup is not None:
            metadata = dict(self._metadata_lookup(certificate_hash) or {})
        
        return {
            'verified': True,
            'message': result.message,
            'certificate': {
                **metadata,
                'blockchainData': blockchain_data(result.block),
            },
        }
    
    def list_certificates(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        """
        List a user's certificates in issuance order.
        
        Raises:
            InvalidRequest: userId missing or empty
        """
        request = _require_mapping(request)
        user_id = request.get('userId')
        if not user_id or not isinstance(user_id, str):
            raise InvalidRequest("User ID is required")
        
        blocks = self._ledger.get_user_certificates(user_id)
        return {
            'certificates': [
                {
                    'hash': block.hash,
                    'blockIndex': block.index,
                    'timestamp': block.timestamp,
                    'data': block.certificate_data.to_dict(),
                }
                for block in blocks
            ]
        }
    
    def audit(self) -> Dict[str, Any]:
        """Full-chain integrity report."""
        return self._ledger.validate_chain().to_dict()
