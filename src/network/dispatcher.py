from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from src.common.config import DispatcherConfig, Peer
from src.common.errors import DiscoveryError, PeerSelectionError
from src.common.logger import get_logger, log_structured
from src.common.models import (
    AttemptError,
    DispatchFailure,
    DispatchResult,
    DispatchSuccess,
    FailureReason,
)
from src.network.selector import PeerSelector


def _classify(exc: Exception) -> FailureReason:
    if isinstance(exc, httpx.TimeoutException):
        return FailureReason.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return FailureReason.HTTP_STATUS
    if isinstance(exc, (PeerSelectionError, DiscoveryError)):
        return FailureReason.NO_PEER
    if isinstance(exc, ValueError):
        return FailureReason.PARSE_ERROR
    return FailureReason.CONNECTION


class RequestDispatcher:
    """Envia uma chamada versionada da API com failover entre peers.

    Cada tentativa refaz a seleção de peer, então um retry pode cair em outro
    peer. Depois de ``max_attempts`` falhas devolve ``DispatchFailure`` em vez
    de lançar exceção.
    """

    def __init__(
        self,
        selector: PeerSelector,
        client: httpx.AsyncClient,
        network: str = "",
        config: Optional[DispatcherConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._selector = selector
        self._client = client
        self._network = network
        self._config = config or DispatcherConfig()
        self._logger = logger or get_logger("dispatcher")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Accept": self._config.media_type,
            "Content-Type": "application/json",
        }

    async def send_get(self, path: str, query: Optional[Dict[str, Any]] = None) -> DispatchResult:
        return await self.dispatch("GET", path, query=query or {})

    async def send_post(self, path: str, body: Any = None) -> DispatchResult:
        return await self.dispatch("POST", path, body={} if body is None else body)

    async def get_height(self) -> Optional[int]:
        result = await self.send_get("blockchain")
        if not result.ok:
            return None
        try:
            return int(result.data["data"]["block"]["height"])
        except (KeyError, TypeError, ValueError):
            log_structured(self._logger, "warning", "height_missing", response=result.data)
            return None

    async def dispatch(
        self,
        method: str,
        path: str,
        *,
        query: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> DispatchResult:
        content: Optional[str] = None
        if body is not None:
            content = body if isinstance(body, str) else json.dumps(body)

        errors: List[AttemptError] = []
        for attempt in range(1, self._config.max_attempts + 1):
            peer: Optional[Peer] = None
            try:
                peer = await self._selector.select_peer()
                data = await self._send(method.upper(), peer, path, query, content)
                return DispatchSuccess(data=data, peer=peer, attempts=attempt)
            except (httpx.HTTPError, httpx.InvalidURL, ValueError, PeerSelectionError, DiscoveryError) as exc:
                reason = _classify(exc)
                message = str(exc) or type(exc).__name__
                self._logger.error(message)
                errors.append(AttemptError(reason=reason, message=message, peer=peer))

        self._logger.error(f"Failed to find a responsive peer after {self._config.max_attempts} tries.")
        return DispatchFailure(reason=FailureReason.EXHAUSTED, attempts=len(errors), errors=errors)

    async def _send(
        self,
        method: str,
        peer: Peer,
        path: str,
        query: Optional[Dict[str, Any]],
        content: Optional[str],
    ) -> Any:
        uri = f"http://{peer.url_authority}/api/{path.lstrip('/')}"
        self._logger.info(f'Sending request on "{self._network}" to "{uri}"')
        resp = await self._client.request(
            method,
            uri,
            params=query or None,
            content=content,
            headers=self.headers,
            timeout=self._config.request_timeout,
        )
        resp.raise_for_status()
        return json.loads(resp.text)
