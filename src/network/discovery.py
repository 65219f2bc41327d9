from __future__ import annotations

import logging
import random
import re
from typing import Any, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from src.common.config import Peer, url_host
from src.common.errors import DiscoveryError
from src.common.logger import get_logger, log_structured
from src.common.models import PeerRecord

SEED_LIST_URL = "https://raw.githubusercontent.com/ArkEcosystem/peers/master/{network}.json"
DISCOVERY_TIMEOUT = 5.0

_VERSION_RE = re.compile(r"^\s*>=\s*(\d+(?:\.\d+)*)\s*$")


def _version_tuple(version: str) -> Tuple[int, ...]:
    parts = []
    for chunk in version.split("-", 1)[0].split("."):
        digits = "".join(ch for ch in chunk if ch.isdigit())
        parts.append(int(digits or 0))
    return tuple(parts)


def parse_peer_list(payload: Any, logger: Optional[logging.Logger] = None) -> List[PeerRecord]:
    """Aceita ``{"data": [...]}`` (API do nó) ou uma lista simples (seed list)."""
    items = payload.get("data", []) if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise DiscoveryError("peer list is not a JSON array")
    records: List[PeerRecord] = []
    for item in items:
        try:
            records.append(PeerRecord.model_validate(item))
        except ValidationError as exc:
            if logger:
                log_structured(logger, "debug", "peer_record_skipped", error=str(exc).splitlines()[0])
    return records


class PeerDiscovery:
    """Descobre peers a partir de um host (``/api/peers``) ou da seed list de uma rede."""

    def __init__(
        self,
        network_or_host: str,
        seeds: List[PeerRecord],
        client: httpx.AsyncClient,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.network_or_host = network_or_host
        self.seeds = seeds
        self._client = client
        self._logger = logger or get_logger("discovery")
        self._max_latency: Optional[float] = None
        self._min_version: Optional[Tuple[int, ...]] = None

    @property
    def is_host(self) -> bool:
        return self.network_or_host.startswith(("http://", "https://"))

    @classmethod
    async def new(
        cls,
        network_or_host: str,
        client: httpx.AsyncClient,
        seeds_url: str = SEED_LIST_URL,
        logger: Optional[logging.Logger] = None,
    ) -> "PeerDiscovery":
        logger = logger or get_logger("discovery")
        is_host = network_or_host.startswith(("http://", "https://"))
        url = network_or_host if is_host else seeds_url.format(network=network_or_host)
        seeds = parse_peer_list(await cls._fetch(client, url), logger)
        # um host explícito é a própria fonte; só a seed list precisa de entradas
        if not seeds and not is_host:
            raise DiscoveryError(f"no seeds found at {url}")
        log_structured(logger, "info", "discovery_ready", source=url, seeds=len(seeds))
        return cls(network_or_host, seeds, client, logger=logger)

    def with_latency(self, max_latency: float) -> "PeerDiscovery":
        self._max_latency = max_latency
        return self

    def with_version(self, spec: str) -> "PeerDiscovery":
        match = _VERSION_RE.match(spec)
        if not match:
            raise ValueError(f"unsupported version range {spec!r}, expected '>=x.y.z'")
        self._min_version = _version_tuple(match.group(1))
        return self

    async def find_peers(self) -> List[PeerRecord]:
        if self.is_host:
            url = self.network_or_host
        else:
            seed = random.choice(self.seeds)
            url = f"http://{url_host(seed.ip)}:{seed.port}/api/peers"
        records = parse_peer_list(await self._fetch(self._client, url), self._logger)
        return [r for r in records if self._accepts(r)]

    async def find_peers_with_plugin(self, name: str) -> List[Peer]:
        peers: List[Peer] = []
        for record in await self.find_peers():
            port = record.plugin_port(name)
            if port is not None:
                peers.append(Peer(host=record.ip, port=port))
        return peers

    def _accepts(self, record: PeerRecord) -> bool:
        # latência desconhecida não é filtrada
        if self._max_latency is not None and record.latency is not None:
            if record.latency > self._max_latency:
                return False
        if self._min_version is not None:
            if record.version is None or _version_tuple(record.version) < self._min_version:
                return False
        return True

    @staticmethod
    async def _fetch(client: httpx.AsyncClient, url: str) -> Any:
        try:
            resp = await client.get(url, timeout=DISCOVERY_TIMEOUT)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise DiscoveryError(f"failed to fetch peers from {url}: {exc}") from exc
