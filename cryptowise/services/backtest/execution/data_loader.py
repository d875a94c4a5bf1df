"""
数据加载器

负责加载回测所需的历史行情，是回测中唯一允许异步等待的边界。
单个币种加载失败时记录警告并跳过，不影响其他币种。
"""

import zlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Protocol, Sequence

import httpx
import numpy as np
from loguru import logger

from cryptowise.core.config import settings
from cryptowise.core.error_handler import DataError, ErrorContext, ErrorSeverity

from ..models import BacktestConfig, PricePoint
from .data_cache import TTLCache

COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "ADA": "cardano",
}

# 随机行情的起始价格（KRW）
SYNTHETIC_BASE_PRICES = {
    "BTC": 50_000_000.0,
    "ETH": 3_000_000.0,
    "SOL": 150_000.0,
    "ADA": 600.0,
}


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """行情时间戳统一为不带时区的 UTC 时间"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class HistoricalDataSource(Protocol):
    """历史行情数据源"""

    name: str

    async def get_price_history(
        self,
        symbol: str,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> List[PricePoint]:
        ...


class InMemoryDataSource:
    """内存数据源：直接提供预先准备好的行情序列"""

    name = "memory"

    def __init__(self, series: Dict[str, Sequence[PricePoint]]):
        self._series = {symbol.upper(): list(points) for symbol, points in series.items()}

    async def get_price_history(
        self,
        symbol: str,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> List[PricePoint]:
        points = self._series.get(symbol.upper())
        if points is None:
            raise DataError(
                f"没有该币种的历史数据: {symbol}",
                context=ErrorContext(symbol=symbol),
            )
        return list(points)


class CoinGeckoDataSource:
    """CoinGecko market_chart 接口，价格按汇率换算为 KRW"""

    name = "coingecko"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        exchange_rate: Optional[float] = None,
        vs_currency: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.COINGECKO_BASE_URL).rstrip("/")
        self.timeout = float(timeout or settings.COINGECKO_TIMEOUT)
        self.exchange_rate = exchange_rate or settings.KRW_EXCHANGE_RATE
        self.vs_currency = vs_currency or settings.COINGECKO_VS_CURRENCY
        self.client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"User-Agent": "CryptoWise/1.0"},
            )
        return self.client

    async def close(self) -> None:
        if self.client is not None and not self.client.is_closed:
            await self.client.aclose()

    @staticmethod
    def get_coin_id(symbol: str) -> str:
        return COINGECKO_IDS.get(symbol.upper(), symbol.lower())

    @staticmethod
    def _days_to_request(start_date: Optional[datetime]) -> int:
        if start_date is None:
            return 365
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        return max(1, (now - to_naive_utc(start_date)).days + 1)

    async def get_price_history(
        self,
        symbol: str,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> List[PricePoint]:
        coin_id = self.get_coin_id(symbol)
        url = f"{self.base_url}/coins/{coin_id}/market_chart"
        params = {
            "vs_currency": self.vs_currency,
            "days": self._days_to_request(start_date),
        }

        try:
            client = await self._get_client()
            response = await client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise DataError(
                f"CoinGecko 请求失败: {symbol}, {e}",
                severity=ErrorSeverity.HIGH,
                context=ErrorContext(symbol=symbol),
                original_exception=e,
            )
        except ValueError as e:
            raise DataError(
                f"CoinGecko 返回了非 JSON 响应: {symbol}",
                context=ErrorContext(symbol=symbol),
                original_exception=e,
            )

        return self._parse_market_chart(symbol, payload)

    def _parse_market_chart(self, symbol: str, payload: Dict) -> List[PricePoint]:
        prices = payload.get("prices")
        if not isinstance(prices, list):
            raise DataError(
                f"CoinGecko 响应缺少 prices 字段: {symbol}",
                context=ErrorContext(symbol=symbol),
            )
        volumes = payload.get("total_volumes") or []

        points = []
        for index, (timestamp_ms, price_usd) in enumerate(prices):
            volume = volumes[index][1] if index < len(volumes) else 0.0
            points.append(
                PricePoint(
                    symbol=symbol.upper(),
                    timestamp=datetime.fromtimestamp(
                        timestamp_ms / 1000, tz=timezone.utc
                    ).replace(tzinfo=None),
                    price=float(price_usd) * self.exchange_rate,
                    volume=float(volume or 0.0),
                )
            )
        return points


class SyntheticDataSource:
    """随机游走行情，仅在 BacktestConfig.use_synthetic_data 打开时使用"""

    name = "synthetic"

    def __init__(self, seed: int = 42, daily_volatility: float = 0.03, days: int = 365):
        self.seed = seed
        self.daily_volatility = daily_volatility
        self.days = days

    async def get_price_history(
        self,
        symbol: str,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> List[PricePoint]:
        symbol = symbol.upper()
        end = end_date or datetime(2024, 12, 31)
        start = start_date or end - timedelta(days=self.days - 1)
        n = (end.date() - start.date()).days + 1
        if n <= 0:
            return []

        # 每个币种的随机序列固定，便于复现
        rng = np.random.default_rng(self.seed + zlib.crc32(symbol.encode()))
        returns = rng.normal(0.0005, self.daily_volatility, n)
        base = SYNTHETIC_BASE_PRICES.get(symbol, 10_000.0)
        prices = base * np.exp(np.cumsum(returns))
        volumes = rng.uniform(1_000, 10_000, n)

        return [
            PricePoint(
                symbol=symbol,
                timestamp=datetime.combine(start.date(), datetime.min.time()) + timedelta(days=i),
                price=float(prices[i]),
                volume=float(volumes[i]),
            )
            for i in range(n)
        ]


class DataLoader:
    """数据加载器"""

    def __init__(
        self,
        data_source: Optional[HistoricalDataSource] = None,
        synthetic_source: Optional[HistoricalDataSource] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.data_source = data_source or CoinGeckoDataSource()
        self.synthetic_source = synthetic_source or SyntheticDataSource()
        self.cache = cache

    def _select_source(self, config: BacktestConfig) -> HistoricalDataSource:
        if config.use_synthetic_data:
            logger.warning("使用随机生成的行情数据进行回测")
            return self.synthetic_source
        return self.data_source

    async def load_symbol_data(
        self,
        source: HistoricalDataSource,
        symbol: str,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> List[PricePoint]:
        """加载单个币种行情，并裁剪到回测区间"""
        start_date = to_naive_utc(start_date)
        end_date = to_naive_utc(end_date)
        key = TTLCache.make_key(source.name, symbol, start_date, end_date)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"命中行情缓存: {symbol}")
                return list(cached)

        points = await source.get_price_history(symbol, start_date, end_date)
        points = [
            p
            for p in points
            if (start_date is None or p.timestamp >= start_date)
            and (end_date is None or p.timestamp <= end_date)
        ]

        if self.cache is not None:
            self.cache.set(key, tuple(points))
        return points

    async def load_market_data(self, config: BacktestConfig) -> List[PricePoint]:
        """
        加载所有币种行情并按时间合并

        Returns:
            按时间升序排列的多币种行情；全部失败时返回空列表
        """
        source = self._select_source(config)
        merged: List[PricePoint] = []

        for symbol in config.symbols:
            try:
                points = await self.load_symbol_data(
                    source, symbol, config.start_date, config.end_date
                )
            except DataError as e:
                logger.warning(f"加载 {symbol} 历史数据失败，跳过该币种: {e.message}")
                continue
            except Exception as e:
                logger.warning(f"加载 {symbol} 历史数据异常，跳过该币种: {e}")
                continue

            if not points:
                logger.warning(f"{symbol} 在回测区间内没有数据，跳过")
                continue

            logger.info(f"{symbol} 数据加载完成: {len(points)} 条")
            merged.extend(points)

        return merge_price_series(merged)


def merge_price_series(points: Sequence[PricePoint]) -> List[PricePoint]:
    """按时间戳稳定排序，合并多个币种的行情"""
    return sorted(points, key=lambda p: p.timestamp)
