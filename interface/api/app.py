"""
Aggregation HTTP API.

Session flow:
- GET  /sp1/context: issues a session nonce bound to the caller's nullifier
- POST /sp1/execute: dry run (no cryptographic proof), nonce must be live
- POST /sp1/prove:   real proof, nonce must be live
- POST /sp1/verify:  consumes the nonce once the client hands the proof back

One AggregationPipeline (and with it one ProofOrchestrator holding the backend
handles and cached keys) is built at startup and shared by all requests.
Handlers are plain ``def`` so proving runs in the worker threadpool rather than
on the event loop.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Union

from fastapi import Body, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse

from aggregation.errors import (
    AggregationError,
    BackendError,
    BackendUnavailable,
    BindingError,
    MalformedInput,
)
from aggregation.public_values import decode_public_values
from aggregation.tiers import GENERATION_CONFIG_HASH, generation_config_vector
from aggregation.types import (
    AggregationInput,
    BackendTarget,
    ExecuteOrProve,
    ProofEncoding,
    ProverResponse,
)
from backend.config import AggregatorConfig, load_config
from backend.orchestrator.pipeline import AggregationPipeline

from .nonces import NonceError, NonceRegistry
from .schemas import (
    ContextResponse,
    ErrorResponse,
    HealthResponse,
    ProverResponseModel,
    VerifyRequest,
)

logger = logging.getLogger(__name__)

ERROR_RESPONSES: Dict[Union[int, str], Dict[str, Any]] = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def create_app(
    config: Optional[AggregatorConfig] = None,
    pipeline: Optional[AggregationPipeline] = None,
    nonces: Optional[NonceRegistry] = None,
) -> FastAPI:
    """Build the API. Without an injected pipeline one is built from config at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state = app.state
        owns_pipeline = state.pipeline is None
        if state.config is None:
            state.config = load_config(os.getenv("AGGREGATOR_CONFIG"))
        # Every request is bound to these; refuse to serve without them.
        state.config.social_config()
        logger.info("Aggregation config: %s", state.config.to_dict())
        if state.nonces is None:
            state.nonces = NonceRegistry(ttl_s=state.config.nonce_ttl_s)
        if owns_pipeline:
            state.pipeline = AggregationPipeline.from_config(state.config)
            mode, target, _ = state.config.default_dispatch()
            if state.config.prepare_on_startup and mode is ExecuteOrProve.PROVE:
                logger.info("Running key setup for %s before serving", target.value)
                state.pipeline.orchestrator.prepare([target])
        logger.info(
            "Aggregation API ready (program=%s digest=%s)",
            state.pipeline.orchestrator.program.name,
            state.pipeline.orchestrator.program.digest[:16],
        )
        try:
            yield
        finally:
            if owns_pipeline:
                state.pipeline.close()

    app = FastAPI(
        title="Proof Aggregation API",
        description="Aggregates generation and social proofs into one session-bound proof.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.pipeline = pipeline
    app.state.nonces = nonces

    app.add_exception_handler(AggregationError, _aggregation_error_handler)

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request):
        program = request.app.state.pipeline.orchestrator.program
        return {"status": "ok", "program_name": program.name, "program_digest": program.digest}

    @app.get("/sp1/context", response_model=ContextResponse, responses=ERROR_RESPONSES)
    def context(request: Request, self_nullifier: str = Query(..., min_length=1)):
        """Issue a session nonce bound to ``self_nullifier``."""
        state = request.app.state
        social = state.config.social_config()
        record = state.nonces.issue(self_nullifier)
        return {
            "selfNullifier": record.self_nullifier,
            "sessionNonce": record.session_nonce,
            "expiresInSeconds": record.expires_at - record.issued_at,
            "generationConfig": generation_config_vector(),
            "generationConfigHash": GENERATION_CONFIG_HASH,
            "socialConfig": {
                "verifiedRoot": social["verified_root"],
                "minVerifiedNeeded": social["min_verified_needed"],
            },
        }

    @app.post("/sp1/execute", response_model=ProverResponseModel, responses=ERROR_RESPONSES)
    def execute(request: Request, body: Dict[str, Any] = Body(...)):
        """Dry run: executes the program locally and returns a placeholder proof."""
        response = _run(request, body, ExecuteOrProve.EXECUTE, BackendTarget.LOCAL, ProofEncoding.COMPRESSED)
        return response.to_json_dict()

    @app.post("/sp1/prove", response_model=ProverResponseModel, responses=ERROR_RESPONSES)
    def prove(
        request: Request,
        body: Dict[str, Any] = Body(...),
        network: Optional[str] = Query(None),
        proof: Optional[str] = Query(None),
    ):
        config = request.app.state.config
        mode, default_target, default_encoding = config.default_dispatch()
        try:
            target = BackendTarget.from_name(network) if network else default_target
            encoding = ProofEncoding.from_name(proof) if proof else default_encoding
        except ValueError as exc:
            raise MalformedInput("query", str(exc)) from exc
        if mode is ExecuteOrProve.EXECUTE and not (network or proof):
            # Deployments configured with proof_mode=execute never prove.
            response = _run(request, body, ExecuteOrProve.EXECUTE, BackendTarget.LOCAL, encoding)
        else:
            response = _run(request, body, ExecuteOrProve.PROVE, target, encoding)
        return response.to_json_dict()

    @app.post("/sp1/verify", status_code=204, responses=ERROR_RESPONSES)
    def verify(request: Request, body: VerifyRequest):
        """Close the session: check the committed values, then burn the nonce."""
        nonces: NonceRegistry = request.app.state.nonces
        nonces.check(body.sessionNonce, body.metadata.self_nullifier)
        try:
            public_values = base64.b64decode(body.publicValues, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedInput("publicValues", f"not valid base64: {exc}") from exc
        committed = decode_public_values(public_values)
        if committed.to_metadata() != body.metadata.model_dump():
            raise MalformedInput("metadata", "does not match the committed public values")
        # TODO: verify the aggregated proof itself once a verifier for the
        # aggregation program's encodings is available to this service.
        nonces.consume(body.sessionNonce, body.metadata.self_nullifier)
        logger.info("Session closed for nullifier=%s", body.metadata.self_nullifier)
        return Response(status_code=204)

    return app


def _run(
    request: Request,
    body: Dict[str, Any],
    mode: ExecuteOrProve,
    target: BackendTarget,
    encoding: ProofEncoding,
) -> ProverResponse:
    state = request.app.state
    # verified_root and min_verified_needed come from the service, never the client.
    document = {**body, **state.config.social_config()}
    nonces: NonceRegistry = state.nonces

    def admit(payload: AggregationInput) -> None:
        nonces.check(payload.session_nonce, payload.self_nullifier)

    return state.pipeline.run(document, mode, target, encoding, admit=admit)


def _status_for(exc: AggregationError) -> int:
    if isinstance(exc, (MalformedInput, BindingError, NonceError)):
        return 400
    if isinstance(exc, BackendUnavailable):
        return 503
    if isinstance(exc, BackendError):
        return 502
    return 500


async def _aggregation_error_handler(request: Request, exc: AggregationError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    body = ErrorResponse(error=exc.message, code=exc.code)
    return JSONResponse(status_code=status, content=body.model_dump())


app = create_app()
