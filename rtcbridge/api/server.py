"""
FastAPI request surface for the negotiation bridge.

Negotiation calls block on the media engine, so every one of them runs in a
worker thread via :func:`asyncio.to_thread`.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI, Header, HTTPException, Path as PathParam, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from ..config import BridgeConfig
from ..errors import (
    BridgeError,
    EngineNegotiationFailure,
    EngineUnavailable,
    MalformedSdp,
    NegotiationTimeout,
    SessionSuperseded,
)
from ..negotiation import Ack, NegotiationResult
from . import schemas
from .state import BridgeState

LOG = logging.getLogger(__name__)

SDP_MEDIA_TYPE = "application/sdp"
SESSION_HEADER = "X-Session-Id"


def _status_for(exc: BridgeError) -> int:
    if isinstance(exc, MalformedSdp):
        return 400
    if isinstance(exc, SessionSuperseded):
        return 409
    if isinstance(exc, EngineUnavailable):
        return 503
    if isinstance(exc, NegotiationTimeout):
        return 504
    if isinstance(exc, EngineNegotiationFailure):
        return 502
    return 500


def _http_error(exc: BridgeError) -> HTTPException:
    status = _status_for(exc)
    if status >= 500:
        LOG.warning("Negotiation request failed (%s): %s", status, exc)
    return HTTPException(status_code=status, detail=str(exc))


def _ack_response(ack: Ack) -> schemas.AckModel:
    return schemas.AckModel(
        status="ok" if ack.applied else "ignored",
        applied=ack.applied,
        session_id=ack.session_id,
        detail=ack.detail,
    )


def _sdp_response(result: NegotiationResult) -> Response:
    return Response(
        content=result.sdp,
        media_type=SDP_MEDIA_TYPE,
        headers={SESSION_HEADER: result.session_id},
    )


async def _read_text(request: Request) -> str:
    body = await request.body()
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Body must be UTF-8 text") from None


def create_app(
    *,
    state: Optional[BridgeState] = None,
    config: Optional[BridgeConfig] = None,
    lifespan: Optional[Callable[..., object]] = None,
) -> FastAPI:
    bridge_state = state or BridgeState(config=config or BridgeConfig())
    negotiator = bridge_state.negotiator

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            if lifespan is not None:
                async with lifespan(app):  # type: ignore[attr-defined]
                    yield
            else:
                yield
        finally:
            await asyncio.to_thread(bridge_state.shutdown)

    app = FastAPI(title="RTC Bridge API", lifespan=app_lifespan)
    app.state.bridge = bridge_state
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    if bridge_state.config.static_dir:
        app.mount(
            "/static",
            StaticFiles(directory=str(Path(bridge_state.config.static_dir)), html=True),
            name="static",
        )

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok", **bridge_state.snapshot()}

    @app.post("/request_offer")
    async def request_offer() -> Response:
        try:
            result = await asyncio.to_thread(negotiator.request_offer)
        except BridgeError as exc:
            raise _http_error(exc) from exc
        return _sdp_response(result)

    @app.post("/provide_offer")
    async def provide_offer(request: Request) -> Response:
        body = await _read_text(request)
        try:
            result = await asyncio.to_thread(negotiator.answer_offer, body)
        except BridgeError as exc:
            raise _http_error(exc) from exc
        return _sdp_response(result)

    @app.post("/provide_answer", response_model=schemas.AckModel)
    async def provide_answer(
        request: Request,
        x_session_id: Optional[str] = Header(default=None),
    ) -> schemas.AckModel:
        body = await _read_text(request)
        try:
            ack = await asyncio.to_thread(negotiator.provide_answer, body, session_id=x_session_id)
        except BridgeError as exc:
            raise _http_error(exc) from exc
        return _ack_response(ack)

    @app.post("/add_ice_candidate/{mline}", response_model=schemas.AckModel)
    async def add_ice_candidate(
        request: Request,
        mline: int = PathParam(..., ge=0),
        x_session_id: Optional[str] = Header(default=None),
    ) -> schemas.AckModel:
        body = await _read_text(request)
        try:
            ack = await asyncio.to_thread(
                negotiator.add_ice_candidate, mline, body, session_id=x_session_id
            )
        except BridgeError as exc:
            raise _http_error(exc) from exc
        return _ack_response(ack)

    @app.post("/ice_candidate", response_model=schemas.AckModel)
    async def ice_candidate(
        payload: schemas.IceCandidateRequest,
        x_session_id: Optional[str] = Header(default=None),
    ) -> schemas.AckModel:
        try:
            ack = await asyncio.to_thread(
                negotiator.add_ice_candidate,
                payload.sdp_mline_index,
                payload.candidate,
                session_id=payload.session_id or x_session_id,
            )
        except BridgeError as exc:
            raise _http_error(exc) from exc
        return _ack_response(ack)

    @app.get("/session", response_model=schemas.SessionModel)
    async def get_session() -> schemas.SessionModel:
        session = negotiator.current_session()
        if session is None:
            raise HTTPException(status_code=404, detail="No active session")
        return schemas.SessionModel(**session.to_dict())

    @app.delete("/session")
    async def close_session() -> dict:
        await asyncio.to_thread(bridge_state.shutdown)
        return {"status": "ok"}

    return app
