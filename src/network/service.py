from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from src.common.config import DispatcherConfig, NetworkOptions
from src.common.errors import DiscoveryError, NetworkAlreadyInitializedError, NetworkNotInitializedError
from src.common.logger import get_logger, log_structured
from src.common.models import DispatchResult
from src.network.discovery import SEED_LIST_URL, PeerDiscovery
from src.network.dispatcher import RequestDispatcher
from src.network.reachability import is_reachable
from src.network.selector import PeerSelector, ProbeFunc
from src.network.state import ConfigSnapshot, NetworkState
from src.network.watcher import MilestoneWatcher


class Network:
    """Ponto de entrada: discovery, seleção de peers, dispatcher e watcher de milestones."""

    def __init__(
        self,
        config: Optional[DispatcherConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        probe: ProbeFunc = is_reachable,
        seeds_url: str = SEED_LIST_URL,
        feature: str = "aip11",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or DispatcherConfig()
        self._own_client = client is None
        self._client = client
        self._probe = probe
        self._seeds_url = seeds_url
        self._feature = feature
        self._logger = logger or get_logger("network")
        self.options: Optional[NetworkOptions] = None
        self.discovery: Optional[PeerDiscovery] = None
        self.state: Optional[NetworkState] = None
        self.dispatcher: Optional[RequestDispatcher] = None
        self.watcher: Optional[MilestoneWatcher] = None

    @property
    def initialized(self) -> bool:
        return self.dispatcher is not None

    async def init(self, options: NetworkOptions) -> None:
        if self.initialized:
            raise NetworkAlreadyInitializedError("network already initialized")
        state = NetworkState.from_preset(options.network)
        if self._client is None:
            self._client = httpx.AsyncClient()

        try:
            discovery = await PeerDiscovery.new(options.network_or_host, client=self._client, seeds_url=self._seeds_url)
        except DiscoveryError:
            if self._own_client:
                await self._client.aclose()
                self._client = None
            raise
        discovery.with_latency(options.max_latency)

        selector = PeerSelector(discovery, explicit_peer=options.explicit_peer, config=self.config, probe=self._probe)
        self.options = options
        self.discovery = discovery
        self.state = state
        self.dispatcher = RequestDispatcher(selector, self._client, network=options.network, config=self.config)
        self.watcher = MilestoneWatcher(self.dispatcher.get_height, state, feature=self._feature)
        self.watcher.start()
        log_structured(
            self._logger,
            "info",
            "network_initialized",
            network=options.network,
            peer=options.peer,
            max_latency=options.max_latency,
        )

    async def send_get(self, path: str, query: Optional[Dict[str, Any]] = None) -> DispatchResult:
        return await self._require_dispatcher().send_get(path, query)

    async def send_post(self, path: str, body: Any = None) -> DispatchResult:
        return await self._require_dispatcher().send_post(path, body)

    async def get_height(self) -> Optional[int]:
        return await self._require_dispatcher().get_height()

    def snapshot(self) -> ConfigSnapshot:
        if self.state is None:
            raise NetworkNotInitializedError("network not initialized; call init() first")
        return self.state.snapshot()

    async def close(self) -> None:
        if self.watcher:
            await self.watcher.stop()
        if self._own_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "Network":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_dispatcher(self) -> RequestDispatcher:
        if self.dispatcher is None:
            raise NetworkNotInitializedError("network not initialized; call init() first")
        return self.dispatcher
