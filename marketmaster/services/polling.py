# marketmaster/services/polling.py
"""
Опрос с ограниченным числом попыток.

Платёжный виджет подгружается в непредсказуемый момент и событием о
готовности не сообщает, поэтому его ждём опросом: фиксированный интервал,
фиксированное число попыток, отмена при уходе со страницы.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class PollTimeout(Exception):
    def __init__(self, attempts: int):
        super().__init__(f"not ready after {attempts} attempts")
        self.attempts = attempts


class PollCancelled(Exception):
    pass


class Poller(Generic[T]):
    def __init__(self, interval: float, max_attempts: int):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.interval = interval
        self.max_attempts = max_attempts
        self.attempts = 0
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def _tick(self) -> None:
        # sleep, который прерывается cancel()
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass

    async def wait_for(self, probe: Callable[[], Optional[T]]) -> T:
        """Зовёт probe раз в interval, пока он не вернёт не-None."""
        while True:
            await self._tick()
            if self.cancelled:
                raise PollCancelled()
            self.attempts += 1
            result = probe()
            if result is not None:
                return result
            if self.attempts >= self.max_attempts:
                raise PollTimeout(self.attempts)
