from __future__ import annotations

import asyncio


async def is_reachable(host: str, port: int, timeout: float = 1.0) -> bool:
    """Probe TCP simples: só abre e fecha a conexão, sem requisição HTTP."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    try:
        writer.close()
        await writer.wait_closed()
    except OSError:
        pass
    return True
