from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from src.common.errors import ConfigurationError
from src.common.logger import get_logger, log_structured
from src.common.models import Milestone

PRESETS: Dict[str, List[Milestone]] = {
    "mainnet": [
        Milestone(height=1, aip11=False, blocktime=8),
        Milestone(height=11_273_000, aip11=True, blocktime=8),
    ],
    "devnet": [
        Milestone(height=1, aip11=False, blocktime=8),
        Milestone(height=2_600_000, aip11=True, blocktime=8),
    ],
    "testnet": [
        Milestone(height=1, aip11=True, blocktime=8),
    ],
}


def register_preset(network: str, milestones: Iterable[Milestone]) -> None:
    items = sorted(milestones, key=lambda m: m.height)
    if not items:
        raise ConfigurationError(f"preset {network!r} has no milestones")
    PRESETS[network] = items


@dataclass(frozen=True)
class ConfigSnapshot:
    version: int
    network: str
    height: int
    milestone: Milestone


class NetworkState:
    """Dono único da configuração de rede (altura atual e milestone ativo).

    Só o watcher de milestones escreve; as escritas são serializadas e cada
    escrita aceita incrementa ``version``. Leitores recebem snapshots imutáveis.
    """

    def __init__(self, network: str, milestones: Iterable[Milestone], logger: Optional[logging.Logger] = None) -> None:
        self.network = network
        self._milestones = sorted(milestones, key=lambda m: m.height)
        if not self._milestones:
            raise ConfigurationError(f"network {network!r} has no milestones")
        self._logger = logger or get_logger("state")
        self._lock = threading.Lock()
        self._height = 0
        self._version = 0

    @classmethod
    def from_preset(cls, network: str, logger: Optional[logging.Logger] = None) -> "NetworkState":
        milestones = PRESETS.get(network)
        if milestones is None:
            raise ConfigurationError(f"unknown network preset {network!r}")
        return cls(network, milestones, logger=logger)

    @property
    def height(self) -> int:
        return self._height

    @property
    def version(self) -> int:
        return self._version

    @property
    def milestone(self) -> Milestone:
        return self.get_milestone(self._height)

    def get_milestone(self, height: Optional[int] = None) -> Milestone:
        if height is None:
            height = self._height
        current = self._milestones[0]
        for milestone in self._milestones:
            if milestone.height > height:
                break
            current = milestone
        return current

    def set_height(self, height: int) -> ConfigSnapshot:
        with self._lock:
            if height < self._height:
                log_structured(
                    self._logger, "debug", "stale_height_ignored", current=self._height, received=height
                )
            elif height != self._height:
                self._height = height
                self._version += 1
            return self._snapshot_locked()

    def snapshot(self) -> ConfigSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> ConfigSnapshot:
        return ConfigSnapshot(
            version=self._version,
            network=self.network,
            height=self._height,
            milestone=self.get_milestone(self._height),
        )
