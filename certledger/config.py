"""
Ledger configuration.

Defaults, overridden by a JSON file, overridden by CERTLEDGER_* environment
variables.
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .blockchain.miner import (
    DEFAULT_DIFFICULTY, DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT_SECONDS,
    validate_difficulty
)
from .blockchain.ledger import DEFAULT_MAX_COMMIT_ATTEMPTS, DEFAULT_WORKER_THREADS
from .storage.chain_store import DEFAULT_CHAIN_KEY

ENV_PREFIX = "CERTLEDGER_"
DEFAULT_CONFIG_PATH = "certledger.json"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class LedgerConfig:
    # Leading zero hex characters per block hash. 2 (~256 hashes) only
    # raises the cost of forging a block slightly; tamper evidence comes
    # from the hash links.
    difficulty: int = DEFAULT_DIFFICULTY
    chain_key: str = DEFAULT_CHAIN_KEY
    max_mining_attempts: int = DEFAULT_MAX_ATTEMPTS
    mining_timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS
    max_commit_attempts: int = DEFAULT_MAX_COMMIT_ATTEMPTS
    worker_threads: int = DEFAULT_WORKER_THREADS
    db_path: str = "certledger.db"
    log_level: str = "INFO"
    
    def validate(self) -> 'LedgerConfig':
        validate_difficulty(self.difficulty)
        if not self.chain_key:
            raise ValueError("chain_key must not be empty")
        if self.max_mining_attempts < 1:
            raise ValueError("max_mining_attempts must be at least 1")
        if self.mining_timeout_seconds is not None and self.mining_timeout_seconds <= 0:
            raise ValueError("mining_timeout_seconds must be positive")
        if self.max_commit_attempts < 1:
            raise ValueError("max_commit_attempts must be at least 1")
        if self.worker_threads < 1:
            raise ValueError("worker_threads must be at least 1")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")
        return self
    
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(name: str, raw: str) -> Any:
    if name in ("difficulty", "max_mining_attempts", "max_commit_attempts", "worker_threads"):
        return int(raw)
    if name == "mining_timeout_seconds":
        return None if raw.strip().lower() in ("", "none", "0") else float(raw)
    return raw


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for f in fields(LedgerConfig):
        env_name = ENV_PREFIX + f.name.upper()
        if env_name in environ:
            try:
                overrides[f.name] = _coerce(f.name, environ[env_name])
            except ValueError:
                raise ValueError(f"Invalid value for {env_name}: {environ[env_name]!r}") from None
    return overrides


def load_config(
    path: Union[str, Path, None] = DEFAULT_CONFIG_PATH,
    environ: Optional[Mapping[str, str]] = None
) -> LedgerConfig:
    """
    Load configuration.
    
    Args:
        path: JSON file; a missing file means defaults
        environ: Environment mapping (defaults to os.environ)
        
    Raises:
        ValueError: unknown keys, unparsable file, or out-of-range values
    """
    merged: Dict[str, Any] = asdict(LedgerConfig())
    
    if path is not None:
        config_path = Path(path)
        if config_path.exists():
            try:
                data = json.loads(config_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise ValueError(f"Config file {config_path} is not valid JSON: {e}") from e
            if not isinstance(data, dict):
                raise ValueError(f"Config file {config_path} must hold a JSON object")
            unknown = set(data) - set(merged)
            if unknown:
                raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
            merged.update(data)
    
    merged.update(_env_overrides(os.environ if environ is None else environ))
    return LedgerConfig(**merged).validate()
