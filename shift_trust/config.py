"""
Configuration module for Shift Trust.

Centralizes protocol limits and deployment settings with environment
variable support.
"""

import os
from dataclasses import dataclass

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("SHIFT_ENV", "dev")  # dev|stage|prod

# Storage backend
STORE_TYPE = os.getenv("SHIFT_STORE", "memory")  # memory|sqlite
DB_PATH = os.getenv("SHIFT_DB_PATH", "data/shift_trust.db")

# Verification backend
VERIFIER_TYPE = os.getenv("SHIFT_VERIFIER", "structural")  # structural|ed25519

# Protocol limits
ATTESTATION_VALIDITY_SECONDS = int(os.getenv("ATTESTATION_VALIDITY_SECONDS", str(86400 * 30)))
MAX_KEY_POOL_SIZE = int(os.getenv("MAX_KEY_POOL_SIZE", "1000"))
MAX_TRUSTED_MANUFACTURERS = int(os.getenv("MAX_TRUSTED_MANUFACTURERS", "10"))
ALLOW_EXPIRED_REFRESH = os.getenv("ALLOW_EXPIRED_REFRESH", "").lower() in ("1", "true", "yes")

# Logging
LOG_LEVEL = os.getenv("SHIFT_LOG_LEVEL", "WARNING")
LOG_JSON = os.getenv("SHIFT_LOG_JSON", "true").lower() in ("1", "true", "yes")


@dataclass
class ProtocolConfig:
    """
    Protocol limits for one ShiftContext.

    Defaults come from the environment; tests construct their own.
    """
    attestation_validity_seconds: int = ATTESTATION_VALIDITY_SECONDS
    max_key_pool_size: int = MAX_KEY_POOL_SIZE
    max_trusted_manufacturers: int = MAX_TRUSTED_MANUFACTURERS
    allow_expired_refresh: bool = ALLOW_EXPIRED_REFRESH
    verifier: str = VERIFIER_TYPE

    def __post_init__(self):
        if self.attestation_validity_seconds <= 0:
            raise ValueError("attestation_validity_seconds must be positive")
        if self.max_key_pool_size <= 0:
            raise ValueError("max_key_pool_size must be positive")
        if self.max_trusted_manufacturers <= 0:
            raise ValueError("max_trusted_manufacturers must be positive")
        if self.verifier not in ("structural", "ed25519"):
            raise ValueError(f"Unknown verifier: {self.verifier}")
