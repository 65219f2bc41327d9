from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from src.common.logger import get_logger, log_structured
from src.network.state import NetworkState

HeightFunc = Callable[[], Awaitable[Optional[int]]]


class MilestoneWatcher:
    """Consulta a altura do peer ativo até que a feature alvo esteja ativa."""

    def __init__(
        self,
        get_height: HeightFunc,
        state: NetworkState,
        feature: str = "aip11",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._get_height = get_height
        self._state = state
        self.feature = feature
        self._logger = logger or get_logger("watcher")
        self._task: Optional[asyncio.Task] = None
        self._stopped = asyncio.Event()
        self.polls = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is not None:
            raise RuntimeError("milestone watcher already started")
        self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        self._stopped.set()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        while not self._stopped.is_set():
            if await self.poll():
                log_structured(self._logger, "info", "feature_active", feature=self.feature, height=self._state.height)
                return
            await self._pause(self._state.milestone.blocktime)

    async def poll(self) -> bool:
        """Uma rodada: atualiza a altura e diz se a feature já está ativa."""
        self.polls += 1
        height = await self._get_height()
        if height is None:
            log_structured(self._logger, "warning", "height_unavailable", feature=self.feature)
            return False
        snapshot = self._state.set_height(height)
        milestone = self._state.get_milestone(height)
        log_structured(
            self._logger,
            "debug",
            "height_polled",
            height=height,
            version=snapshot.version,
            blocktime=milestone.blocktime,
        )
        return milestone.is_active(self.feature)

    async def _pause(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
