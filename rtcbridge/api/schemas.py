"""
Pydantic schemas mirroring the REST contract.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class AckModel(BaseModel):
    status: str = "ok"
    applied: bool = False
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    detail: Optional[str] = None
    model_config = ConfigDict(populate_by_name=True)


class IceCandidateRequest(BaseModel):
    candidate: str
    sdp_mline_index: int = Field(
        validation_alias=AliasChoices(
            "sdpMLineIndex", "sdp_mline_index", "mlineIndex", "mline", "media_line_index"
        ),
    )
    sdp_mid: Optional[str] = Field(default=None, validation_alias=AliasChoices("sdpMid", "sdp_mid"))
    session_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sessionId", "session_id")
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("candidate", mode="before")
    @classmethod
    def _normalise_candidate(cls, value: object) -> str:
        return str(value or "").strip()

    @field_validator("sdp_mline_index")
    @classmethod
    def _validate_mline(cls, value: int) -> int:
        coerced = int(value)
        if coerced < 0:
            raise ValueError("sdpMLineIndex must be non-negative")
        return coerced


class SessionModel(BaseModel):
    session_id: str = Field(alias="sessionId")
    phase: str
    created_at: float = Field(alias="createdAt")
    local_description: Optional[str] = Field(default=None, alias="localDescription")
    remote_description: Optional[str] = Field(default=None, alias="remoteDescription")
    local_candidates: int = Field(default=0, alias="localCandidates")
    remote_candidates: int = Field(default=0, alias="remoteCandidates")
    error: Optional[str] = None
    model_config = ConfigDict(populate_by_name=True)
