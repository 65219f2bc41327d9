from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional, Protocol, Set

from src.common.config import DispatcherConfig, Peer
from src.common.errors import NoCandidatePeerError, NoReachablePeerError
from src.common.logger import get_logger, log_structured
from src.network.reachability import is_reachable

ProbeFunc = Callable[[str, int, float], Awaitable[bool]]


class PeerSource(Protocol):
    async def find_peers_with_plugin(self, name: str) -> List[Peer]: ...


class PeerSelector:
    """Escolhe o peer da próxima requisição: seed explícito ou peer alcançável da discovery."""

    def __init__(
        self,
        discovery: Optional[PeerSource],
        explicit_peer: Optional[Peer] = None,
        config: Optional[DispatcherConfig] = None,
        probe: ProbeFunc = is_reachable,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if discovery is None and explicit_peer is None:
            raise ValueError("either a discovery source or an explicit peer is required")
        self._discovery = discovery
        self._explicit_peer = explicit_peer
        self._config = config or DispatcherConfig()
        self._probe = probe
        self._logger = logger or get_logger("selector")

    async def select_peer(self) -> Peer:
        if self._explicit_peer is not None:
            return self._explicit_peer

        rejected: Set[Peer] = set()
        for attempt in range(1, self._config.max_selection_attempts + 1):
            candidates = await self._discovery.find_peers_with_plugin(self._config.capability)
            if not candidates:
                raise NoCandidatePeerError(f"no peer advertises {self._config.capability!r}")
            remaining = [p for p in candidates if p not in rejected]
            if not remaining:
                break

            peer = random.choice(remaining)
            if await self._probe(peer.host, peer.port, self._config.probe_timeout):
                return peer

            log_structured(self._logger, "warning", f"{peer.address} is unresponsive. Choosing new peer.", attempt=attempt)
            rejected.add(peer)
            if len(remaining) == 1:
                break
            if attempt < self._config.max_selection_attempts:
                await asyncio.sleep(self._backoff(attempt))

        raise NoReachablePeerError(
            f"no reachable peer after probing {len(rejected)} candidate(s): "
            + ", ".join(sorted(p.address for p in rejected))
        )

    def _backoff(self, attempt: int) -> float:
        base = self._config.backoff_base
        if base <= 0:
            return 0.0
        return base * (2 ** (attempt - 1)) + random.uniform(0, base)
