from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Peer:
    host: str
    port: int

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def url_authority(self) -> str:
        return f"{url_host(self.host)}:{self.port}"


def url_host(host: str) -> str:
    # IPv6 precisa de colchetes dentro da URL
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


@dataclass(frozen=True)
class NetworkOptions:
    """Opções de inicialização da rede."""

    network: str
    peer: Optional[str] = None  # seed explícito; desativa discovery
    peer_port: int = 4003
    max_latency: int = 300  # ms

    @property
    def explicit_peer(self) -> Optional[Peer]:
        if not self.peer:
            return None
        return Peer(host=self.peer, port=self.peer_port)

    @property
    def network_or_host(self) -> str:
        if self.peer:
            return f"http://{url_host(self.peer)}:{self.peer_port}/api/peers"
        return self.network


@dataclass(frozen=True)
class DispatcherConfig:
    request_timeout: float = 3.0  # segundos
    max_attempts: int = 3
    probe_timeout: float = 1.0
    max_selection_attempts: int = 5
    backoff_base: float = 0.1
    capability: str = "core-api"
    media_type: str = "application/vnd.core-api.v2+json"
