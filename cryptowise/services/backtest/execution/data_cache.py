"""
历史数据缓存

由调用方显式创建并注入 DataLoader，按 TTL 过期、按容量淘汰最久未使用的条目
"""

import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from loguru import logger

from cryptowise.core.config import settings

V = TypeVar("V")


class TTLCache(Generic[V]):
    """带过期时间的有界缓存"""

    def __init__(
        self,
        max_entries: int = 64,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries <= 0:
            raise ValueError("max_entries 必须大于0")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[float, V]]" = OrderedDict()
        self._lock = threading.RLock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    @classmethod
    def from_settings(cls) -> "TTLCache":
        return cls(
            max_entries=settings.DATA_CACHE_MAX_ENTRIES,
            ttl_seconds=settings.DATA_CACHE_TTL_SECONDS,
        )

    @staticmethod
    def make_key(
        source: str, symbol: str, start_date: Optional[datetime], end_date: Optional[datetime]
    ) -> Tuple[str, str, str, str]:
        """生成数据缓存键"""
        start_str = start_date.strftime("%Y%m%d") if start_date else "-"
        end_str = end_date.strftime("%Y%m%d") if end_date else "-"
        return (source, symbol, start_str, end_str)

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None

            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                self._stats["misses"] += 1
                return None

            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._stats["evictions"] += 1
                logger.debug(f"缓存容量已满，淘汰: {evicted}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {**self._stats, "entries": len(self._entries)}
