# marketmaster/realtime.py
import asyncio
import json
from collections import defaultdict
from typing import AsyncIterator


class _Hub:
    def __init__(self) -> None:
        self._queues: "dict[str, set[asyncio.Queue[str]]]" = defaultdict(set)

    async def publish(self, key: str, event: str, payload: dict) -> None:
        """
        Разослать событие SSE всем подписчикам ключа (обычно id пользователя).
        """
        data = json.dumps(payload, ensure_ascii=False, default=str)
        # формат SSE: event: <name>\ndata: <json>\n\n
        msg = f"event: {event}\ndata: {data}\n\n"
        for q in list(self._queues.get(key, ())):
            await q.put(msg)

    async def subscribe(self, key: str) -> AsyncIterator[str]:
        """
        Асинхронный генератор сообщений SSE для одного ключа.
        """
        q: "asyncio.Queue[str]" = asyncio.Queue()
        self._queues[key].add(q)
        try:
            while True:
                yield await q.get()
        finally:
            self._queues[key].discard(q)
            if not self._queues[key]:
                self._queues.pop(key, None)

    def subscribers(self, key: str) -> int:
        return len(self._queues.get(key, ()))


hub = _Hub()
