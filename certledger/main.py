"""
certledger - Command Line Entry Point

Operates a certificate chain stored in a SQLite file:

    certledger bootstrap
    certledger issue --user u1 --module m1 --skill triage --level basic --score 92
    certledger verify <hash>
    certledger list <user-id>
    certledger audit
"""

import argparse
import json
import logging
import math
import sys

from .blockchain.ledger import CertificateLedger
from .config import DEFAULT_CONFIG_PATH, load_config
from .errors import LedgerError
from .integration.certificate_service import CertificateService
from .log import setup_logging
from .storage.chain_store import ChainStore
from .storage.kv import SQLiteKeyValueStore


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED_CHECK = 1
EXIT_ERROR = 2


def _score(value: str):
    """Parse --score, keeping integral scores as int."""
    try:
        score = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid score: {value!r}") from None
    if not math.isfinite(score):
        raise argparse.ArgumentTypeError(f"invalid score: {value!r}")
    return int(score) if score.is_integer() else score


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certledger",
        description="Hash-chained certificate ledger"
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH)
    parser.add_argument("--db", default=None, help="SQLite file (overrides config)")
    parser.add_argument("--difficulty", type=int, default=None)
    
    sub = parser.add_subparsers(dest="cmd", required=True)
    
    sub.add_parser("bootstrap", help="Create the genesis block if missing")
    
    issue = sub.add_parser("issue", help="Record a certificate")
    issue.add_argument("--user", required=True)
    issue.add_argument("--module", required=True)
    issue.add_argument("--skill", required=True)
    issue.add_argument("--level", required=True)
    issue.add_argument("--score", type=_score, default=None)
    issue.add_argument("--issued-at", default=None)
    
    verify = sub.add_parser("verify", help="Verify a certificate hash")
    verify.add_argument("hash")
    
    listing = sub.add_parser("list", help="List a user's certificates")
    listing.add_argument("user")
    
    sub.add_parser("audit", help="Validate the whole chain")
    return parser


def _print(data) -> None:
    print(json.dumps(data, indent=2))


def main(argv=None) -> int:
    """Run the CLI; returns the process exit code."""
    args = _build_parser().parse_args(argv)
    
    try:
        config = load_config(args.config)
        if args.db is not None:
            config.db_path = args.db
        if args.difficulty is not None:
            config.difficulty = args.difficulty
        config.validate()
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR
    
    setup_logging(config.log_level)
    store = ChainStore(SQLiteKeyValueStore(config.db_path), key=config.chain_key)
    
    with CertificateLedger.from_config(store, config) as ledger:
        service = CertificateService(ledger)
        try:
            if args.cmd == "bootstrap":
                genesis = ledger.bootstrap()
                _print(genesis.to_dict())
                return EXIT_OK
            
            if args.cmd == "issue":
                request = {
                    'userId': args.user,
                    'moduleId': args.module,
                    'skill': args.skill,
                    'level': args.level,
                    'issuedAt': args.issued_at,
                }
                if args.score is not None:
                    request['score'] = args.score
                _print(service.issue(request))
                return EXIT_OK
            
            if args.cmd == "verify":
                result = service.verify({'certificateHash': args.hash})
                _print(result)
                return EXIT_OK if result['verified'] else EXIT_FAILED_CHECK
            
            if args.cmd == "list":
                _print(service.list_certificates({'userId': args.user}))
                return EXIT_OK
            
            if args.cmd == "audit":
                report = service.audit()
                _print(report)
                return EXIT_OK if report['isValid'] else EXIT_FAILED_CHECK
        except LedgerError as e:
            logger.error("%s failed: %s", args.cmd, e)
            print(f"error: {e}", file=sys.stderr)
            return EXIT_ERROR
    
    return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
