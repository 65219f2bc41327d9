from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from src.common.config import Peer


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    HTTP_STATUS = "http_status"
    PARSE_ERROR = "parse_error"
    NO_PEER = "no_peer"
    EXHAUSTED = "exhausted"


class PeerRecord(BaseModel):
    """Entrada de uma lista de peers (seed list ou /api/peers)."""

    ip: str
    port: int = 0
    ports: Dict[str, int] = Field(default_factory=dict)
    version: Optional[str] = None
    latency: Optional[float] = None  # ms

    model_config = {
        "extra": "ignore",
    }

    def plugin_port(self, name: str) -> Optional[int]:
        port = self.ports.get(name)
        if port is None or port <= 0:
            return None
        return port


class Milestone(BaseModel):
    height: int = 1
    aip11: bool = False
    blocktime: float = 8.0  # segundos

    model_config = {
        "extra": "allow",
        "frozen": True,
    }

    def is_active(self, feature: str) -> bool:
        if feature in type(self).model_fields:
            return bool(getattr(self, feature))
        return bool((self.model_extra or {}).get(feature, False))


class AttemptError(BaseModel):
    reason: FailureReason
    message: str
    peer: Optional[Peer] = None


class DispatchSuccess(BaseModel):
    ok: Literal[True] = True
    data: Any = None
    peer: Peer
    attempts: int = 1


class DispatchFailure(BaseModel):
    ok: Literal[False] = False
    reason: FailureReason = FailureReason.EXHAUSTED
    attempts: int = 0
    errors: List[AttemptError] = Field(default_factory=list)

    @property
    def last_error(self) -> Optional[AttemptError]:
        return self.errors[-1] if self.errors else None


DispatchResult = Union[DispatchSuccess, DispatchFailure]
