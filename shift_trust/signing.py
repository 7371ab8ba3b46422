"""
Shift Trust Signing

Ed25519 (RFC 8032) via PyNaCl. Used for:
- caller authentication: every mutating request is signed by its caller and
  the verify key becomes the caller identity
- device hardware signatures over destruction proofs
- the hardened (non-placeholder) quote and certificate verifiers
"""

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .canonicalization import canonicalize
from .errors import InvalidRequestSignature, MalformedInput
from .models import PUBLIC_KEY_SIZE, SIGNATURE_SIZE, from_hex, to_hex


def generate_signing_key() -> Tuple[bytes, bytes]:
    """
    Generate an Ed25519 key pair.

    Returns:
        Tuple of (signing_key_bytes, verify_key_bytes)
    """
    signing_key = SigningKey.generate()
    return bytes(signing_key), bytes(signing_key.verify_key)


def verify_key_for(signing_key: bytes) -> bytes:
    return bytes(SigningKey(signing_key).verify_key)


def sign_data(data: bytes, signing_key: bytes) -> bytes:
    """Sign data with Ed25519 signing key."""
    return SigningKey(signing_key).sign(data).signature


def verify_signature(data: bytes, signature: bytes, verify_key: bytes) -> bool:
    """Verify Ed25519 signature. Malformed keys or signatures verify False."""
    if len(signature) != SIGNATURE_SIZE or len(verify_key) != PUBLIC_KEY_SIZE:
        return False
    try:
        VerifyKey(verify_key).verify(data, signature)
        return True
    except (BadSignatureError, ValueError):
        return False


@dataclass
class SignedRequest:
    """
    A caller-authenticated protocol request.

    The signature covers the canonical JSON of every field except itself.
    """
    operation: str
    params: Dict[str, Any]
    signer: bytes
    signature: bytes = b""
    issued_at: int = field(default_factory=lambda: int(time.time()))
    nonce: str = field(default_factory=lambda: secrets.token_hex(16))

    def signing_bytes(self) -> bytes:
        return canonicalize({
            "operation": self.operation,
            "params": self.params,
            "signer": self.signer,
            "issued_at": self.issued_at,
            "nonce": self.nonce,
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "params": self.params,
            "signer": to_hex(self.signer),
            "signature": to_hex(self.signature),
            "issued_at": self.issued_at,
            "nonce": self.nonce,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SignedRequest':
        required = ["operation", "params", "signer", "signature", "issued_at", "nonce"]
        missing = [f for f in required if f not in data]
        if missing:
            raise MalformedInput(f"Missing required fields: {missing}")
        if not isinstance(data["params"], dict):
            raise MalformedInput("params must be an object")
        try:
            issued_at = int(data["issued_at"])
        except (TypeError, ValueError):
            raise MalformedInput("issued_at must be an integer")
        return cls(
            operation=data["operation"],
            params=data["params"],
            signer=from_hex(data["signer"], "signer"),
            signature=from_hex(data["signature"], "signature"),
            issued_at=issued_at,
            nonce=str(data["nonce"]),
        )


def sign_request(
    signing_key: bytes,
    operation: str,
    params: Dict[str, Any],
    issued_at: Optional[int] = None,
    nonce: Optional[str] = None
) -> SignedRequest:
    """Build and sign a request on behalf of the key's owner."""
    request = SignedRequest(
        operation=operation,
        params=params,
        signer=verify_key_for(signing_key),
    )
    if issued_at is not None:
        request.issued_at = issued_at
    if nonce is not None:
        request.nonce = nonce
    request.signature = sign_data(request.signing_bytes(), signing_key)
    return request


def authenticate_request(request: SignedRequest) -> bytes:
    """
    Verify a request signature and return the caller identity.

    Raises:
        InvalidRequestSignature: signature does not verify under request.signer
    """
    try:
        message = request.signing_bytes()
    except ValueError as e:
        raise MalformedInput(f"Request body is not canonical JSON: {e}")
    if not verify_signature(message, request.signature, request.signer):
        raise InvalidRequestSignature(operation=request.operation)
    return request.signer
