"""
HTTP surface for Shift Trust.

Mutations arrive as signed requests on POST /v1/requests; everything else is
a read or a pure helper. ShiftErrors map to JSON bodies:

    {"error": <code>, "category": <category>, "message": <text>}

with 403 (authorization), 404 (not found), 409 (mismatch or state
conflict) and 422 (validation).
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from . import config as settings
from .errors import ErrorCategory, ShiftError
from .logging_config import set_request_id
from .models import ProofType
from .protocol import ShiftProtocol
from .signing import SignedRequest

STATUS_BY_CATEGORY = {
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.MISMATCH: 409,
    ErrorCategory.STATE_CONFLICT: 409,
    ErrorCategory.VALIDATION: 422,
}


class SignedRequestBody(BaseModel):
    operation: str
    params: Dict[str, Any] = Field(default_factory=dict)
    signer: str
    signature: str
    issued_at: int
    nonce: str


class DestructionProofBody(BaseModel):
    device_id: str
    private_key_hash: str
    public_key: str
    nonce: str
    proof_type: ProofType = ProofType.ZERO_KNOWLEDGE


def create_app(protocol: Optional[ShiftProtocol] = None) -> FastAPI:
    """Build the FastAPI application around one protocol instance."""
    protocol = protocol or ShiftProtocol()
    app = FastAPI(title="Shift Trust", version=__version__)
    app.state.protocol = protocol

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(ShiftError)
    async def shift_error_handler(request: Request, exc: ShiftError):
        return JSONResponse(status_code=STATUS_BY_CATEGORY[exc.category], content=exc.to_dict())

    @app.get("/v1/health")
    def health():
        return {
            "status": "ok",
            "version": __version__,
            "env": settings.ENV,
            "verifier": protocol.ctx.config.verifier,
        }

    @app.get("/v1/stats")
    def stats():
        return protocol.stats()

    @app.post("/v1/requests")
    def submit_request(body: SignedRequestBody):
        request = SignedRequest.from_dict(body.model_dump())
        return protocol.submit(request)

    @app.get("/v1/attestations/{device_id}")
    def get_attestation(device_id: str):
        record = protocol.attestations.get_attestation(device_id)
        if record is None:
            raise HTTPException(404, "NOT_FOUND")
        data = record.to_dict()
        data["effective_status"] = record.effective_status(protocol.ctx.now()).value
        return data

    @app.get("/v1/attestations/{device_id}/verify")
    def verify_attestation(device_id: str):
        return {"device_id": device_id, "valid": protocol.verify_attestation(device_id)}

    @app.get("/v1/key-pools/{device_id}")
    def get_key_pool(device_id: str):
        pool = protocol.key_pools.get_key_pool(device_id)
        if pool is None:
            raise HTTPException(404, "NOT_FOUND")
        return pool.to_dict()

    @app.get("/v1/encumbrances/{device_id}/{key_index}")
    def get_encumbrance(device_id: str, key_index: int):
        record = protocol.ledger.get_encumbrance(device_id, key_index)
        if record is None:
            raise HTTPException(404, "NOT_FOUND")
        return record.to_dict()

    @app.get("/v1/encumbrances/{device_id}/{key_index}/verify")
    def verify_encumbrance(device_id: str, key_index: int, transaction_hash: str):
        valid = protocol.verify_encumbrance(device_id, key_index, transaction_hash)
        return {"device_id": device_id, "key_index": key_index, "valid": valid}

    @app.post("/v1/destruction-proofs")
    def create_destruction_proof(body: DestructionProofBody):
        proof = protocol.create_destruction_proof(
            body.device_id, body.private_key_hash, body.public_key, body.nonce,
            proof_type=body.proof_type,
        )
        return proof.to_dict()

    return app
