import asyncio
import json
import socket
from typing import List, Optional

import httpx
import pytest

from src.common.config import DispatcherConfig, NetworkOptions, Peer
from src.common.errors import DiscoveryError, NetworkAlreadyInitializedError, NetworkNotInitializedError
from src.common.models import FailureReason, Milestone
from src.network.reachability import is_reachable
from src.network import service as service_module
from src.network.service import Network
from src.network.state import register_preset

register_preset(
    "integration",
    [Milestone(height=1, aip11=False, blocktime=0.05), Milestone(height=100, aip11=True, blocktime=0.05)],
)

FAST = DispatcherConfig(backoff_base=0.0, probe_timeout=0.5)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class _FakePeer:
    """Nó HTTP mínimo: /api/peers, /api/blockchain, /seeds/<network>.json e eco em POST."""

    def __init__(self, height: int = 100, status: int = 200, peers: Optional[List[dict]] = None) -> None:
        self.height = height
        self.status = status
        self.peers = peers or []
        self.seeds: List[dict] = []
        self.requests = []
        self.port = 0
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def record(self) -> dict:
        return {"ip": "127.0.0.1", "port": self.port, "ports": {"core-api": self.port}, "latency": 5}

    async def start(self) -> "_FakePeer":
        self._server = await asyncio.start_server(self._on_client, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()

    def _route(self, method: str, path: str, body: bytes):
        if path.startswith("/seeds/"):
            return 200, self.seeds
        if path == "/api/peers":
            return 200, {"data": self.peers}
        if self.status != 200:
            return self.status, {"error": "unavailable"}
        if method == "POST":
            return 200, json.loads(body or b"null")
        if path == "/api/blockchain":
            return 200, {"data": {"block": {"height": self.height}}}
        return 404, {"error": "not found"}

    async def _on_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request_line = await reader.readline()
            if not request_line:
                return  # probe de alcance
            method, target, _ = request_line.decode().split(" ", 2)
            headers = {}
            while True:
                line = await reader.readline()
                if line in (b"\r\n", b"\n", b""):
                    break
                key, _, value = line.decode().partition(":")
                headers[key.strip().lower()] = value.strip()
            body = await reader.readexactly(int(headers.get("content-length") or 0))
            self.requests.append((method, target, headers, body))
            status, payload = self._route(method, target.split("?")[0], body)
            data = json.dumps(payload).encode()
            head = (
                f"HTTP/1.1 {status} X\r\nContent-Type: application/json\r\n"
                f"Content-Length: {len(data)}\r\nConnection: close\r\n\r\n"
            )
            writer.write(head.encode() + data)
            await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()


@pytest.mark.asyncio
async def test_reachability_probe():
    peer = await _FakePeer().start()
    try:
        assert await is_reachable("127.0.0.1", peer.port, timeout=0.5)
        assert not await is_reachable("127.0.0.1", _free_port(), timeout=0.5)
    finally:
        await peer.stop()


@pytest.mark.asyncio
async def test_explicit_peer_end_to_end():
    peer = await _FakePeer(height=100).start()
    network = Network(config=FAST)
    try:
        await network.init(NetworkOptions(network="integration", peer="127.0.0.1", peer_port=peer.port))
        await asyncio.wait_for(network.watcher.wait(), timeout=2.0)
        assert network.snapshot().height == 100
        assert network.snapshot().milestone.aip11

        body = {"transactions": [{"id": "abc", "amount": "1000", "asset": {"votes": ["+a"]}}]}
        result = await network.send_post("transactions", body)
        assert result.ok
        assert result.data == body
        assert result.peer == Peer("127.0.0.1", peer.port)

        _, target, headers, _ = peer.requests[-1]
        assert target == "/api/transactions"
        assert headers["accept"] == "application/vnd.core-api.v2+json"
        assert await network.get_height() == 100
    finally:
        await network.close()
        await peer.stop()


@pytest.mark.asyncio
async def test_watcher_polls_until_height_activates_feature():
    peer = await _FakePeer(height=10).start()
    network = Network(config=FAST)
    try:
        await network.init(NetworkOptions(network="integration", peer="127.0.0.1", peer_port=peer.port))
        await asyncio.sleep(0.2)
        assert network.watcher.running
        assert network.snapshot().height == 10

        peer.height = 120
        await asyncio.wait_for(network.watcher.wait(), timeout=2.0)
        assert network.snapshot().height == 120
        assert network.watcher.done
    finally:
        await network.close()
        await peer.stop()


@pytest.mark.asyncio
async def test_discovery_skips_unreachable_peer():
    live = await _FakePeer(height=100).start()
    seed = await _FakePeer(height=1).start()
    dead_port = _free_port()
    dead = {"ip": "127.0.0.1", "port": dead_port, "ports": {"core-api": dead_port}, "latency": 5}
    slow = {**seed.record, "latency": 9999}
    seed.seeds = [{"ip": "127.0.0.1", "port": seed.port}]
    seed.peers = [dead, live.record, slow]
    network = Network(config=FAST, seeds_url=f"http://127.0.0.1:{seed.port}/seeds/{{network}}.json")
    try:
        await network.init(NetworkOptions(network="integration", max_latency=300))
        for _ in range(5):
            result = await network.send_get("blockchain")
            assert result.ok
            assert result.peer == Peer("127.0.0.1", live.port)
    finally:
        await network.close()
        await live.stop()
        await seed.stop()


@pytest.mark.asyncio
async def test_failing_peer_exhausts_three_attempts():
    peer = await _FakePeer(status=503).start()
    network = Network(config=FAST)
    try:
        await network.init(NetworkOptions(network="integration", peer="127.0.0.1", peer_port=peer.port))
        await network.watcher.stop()
        result = await network.send_get("blockchain", {"tag": "exhaust"})
        assert not result.ok
        assert result.reason == FailureReason.EXHAUSTED
        assert result.attempts == 3
        assert [e.reason for e in result.errors] == [FailureReason.HTTP_STATUS] * 3
        tagged = [r for r in peer.requests if "tag=exhaust" in r[1]]
        assert len(tagged) == 3
    finally:
        await network.close()
        await peer.stop()


@pytest.mark.asyncio
async def test_init_lifecycle_errors():
    network = Network(config=FAST)
    with pytest.raises(NetworkNotInitializedError):
        await network.send_get("blockchain")

    with pytest.raises(DiscoveryError):
        await network.init(NetworkOptions(network="integration", peer="127.0.0.1", peer_port=_free_port()))
    await network.close()

    peer = await _FakePeer().start()
    network = Network(config=FAST)
    try:
        options = NetworkOptions(network="integration", peer="127.0.0.1", peer_port=peer.port)
        await network.init(options)
        with pytest.raises(NetworkAlreadyInitializedError):
            await network.init(options)
    finally:
        await network.close()
        await peer.stop()


@pytest.mark.asyncio
async def test_failed_init_closes_owned_client(monkeypatch):
    created = []

    class _TrackedClient(httpx.AsyncClient):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr(service_module.httpx, "AsyncClient", _TrackedClient)
    network = Network(config=FAST, seeds_url=f"http://127.0.0.1:{_free_port()}/{{network}}.json")

    with pytest.raises(DiscoveryError):
        await network.init(NetworkOptions(network="integration"))

    assert len(created) == 1
    assert created[0].is_closed
    assert not network.initialized


@pytest.mark.asyncio
async def test_failed_init_leaves_injected_client_open():
    async with httpx.AsyncClient() as client:
        network = Network(config=FAST, client=client)
        with pytest.raises(DiscoveryError):
            await network.init(NetworkOptions(network="integration", peer="127.0.0.1", peer_port=_free_port()))
        assert not client.is_closed
