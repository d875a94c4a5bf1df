"""
数据加载测试

多币种合并、失败币种跳过、区间裁剪、行情缓存，以及 CoinGecko 数据源的解析。

源码：cryptowise/services/backtest/execution/data_loader.py
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import List

import httpx
import pytest

from cryptowise.core.error_handler import DataError
from cryptowise.services.backtest.execution import (
    CoinGeckoDataSource,
    DataLoader,
    InMemoryDataSource,
    SyntheticDataSource,
    TTLCache,
)
from cryptowise.services.backtest.models import PricePoint

START = datetime(2024, 1, 1)


class CountingSource:
    """记录调用次数的数据源"""

    name = "counting"

    def __init__(self, points: List[PricePoint]):
        self.points = points
        self.calls = 0

    async def get_price_history(self, symbol, start_date, end_date):
        self.calls += 1
        return list(self.points)


class BrokenSource:
    """总是失败的数据源"""

    name = "broken"

    async def get_price_history(self, symbol, start_date, end_date):
        raise ConnectionError("network down")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestDataLoader:
    """DataLoader 测试"""

    @pytest.mark.asyncio
    async def test_merges_symbols_by_timestamp(self, backtest_config, series_factory):
        source = InMemoryDataSource({
            "BTC": series_factory("BTC", [100.0, 101.0, 102.0]),
            "ETH": series_factory("ETH", [10.0, 11.0], start=START + timedelta(hours=12)),
        })
        config = replace(backtest_config, symbols=["BTC", "ETH"])

        points = await DataLoader(data_source=source).load_market_data(config)

        assert [p.symbol for p in points] == ["BTC", "ETH", "BTC", "ETH", "BTC"]
        timestamps = [p.timestamp for p in points]
        assert timestamps == sorted(timestamps)

    @pytest.mark.asyncio
    async def test_missing_symbol_is_skipped(self, backtest_config, series_factory):
        source = InMemoryDataSource({"BTC": series_factory("BTC", [100.0] * 5)})
        config = replace(backtest_config, symbols=["DOGE", "BTC"])

        points = await DataLoader(data_source=source).load_market_data(config)

        assert len(points) == 5
        assert {p.symbol for p in points} == {"BTC"}

    @pytest.mark.asyncio
    async def test_failing_source_returns_empty(self, backtest_config):
        points = await DataLoader(data_source=BrokenSource()).load_market_data(backtest_config)
        assert points == []

    @pytest.mark.asyncio
    async def test_filters_to_backtest_window(self, backtest_config, series_factory):
        source = InMemoryDataSource({"BTC": series_factory("BTC", [100.0] * 10)})
        config = replace(
            backtest_config,
            start_date=START + timedelta(days=2),
            end_date=START + timedelta(days=5),
        )

        points = await DataLoader(data_source=source).load_market_data(config)

        assert [p.timestamp for p in points] == [START + timedelta(days=d) for d in range(2, 6)]

    @pytest.mark.asyncio
    async def test_synthetic_data_only_when_enabled(self, backtest_config, series_factory):
        source = InMemoryDataSource({"BTC": series_factory("BTC", [100.0] * 3)})
        loader = DataLoader(data_source=source, synthetic_source=SyntheticDataSource(seed=7))

        real = await loader.load_market_data(backtest_config)
        synthetic = await loader.load_market_data(replace(backtest_config, use_synthetic_data=True))

        assert len(real) == 3
        assert len(synthetic) == 366
        assert all(p.price > 0 for p in synthetic)

    @pytest.mark.asyncio
    async def test_cache_avoids_repeated_loads(self, backtest_config, series_factory):
        source = CountingSource(series_factory("BTC", [100.0] * 5))
        loader = DataLoader(data_source=source, cache=TTLCache(max_entries=8, ttl_seconds=60))

        first = await loader.load_market_data(backtest_config)
        second = await loader.load_market_data(backtest_config)

        assert first == second
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_cache_expires(self, backtest_config, series_factory):
        clock = FakeClock()
        source = CountingSource(series_factory("BTC", [100.0] * 5))
        loader = DataLoader(data_source=source, cache=TTLCache(ttl_seconds=60, clock=clock))

        await loader.load_market_data(backtest_config)
        clock.now = 61.0
        await loader.load_market_data(backtest_config)

        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_timezone_aware_window(self, backtest_config, series_factory):
        """带时区的回测区间换算为 UTC 后裁剪"""
        source = InMemoryDataSource({"BTC": series_factory("BTC", [100.0] * 10)})
        kst = timezone(timedelta(hours=9))
        config = replace(
            backtest_config,
            start_date=datetime(2024, 1, 3, 9, tzinfo=kst),
            end_date=datetime(2024, 1, 6, 9, tzinfo=kst),
        )

        points = await DataLoader(data_source=source).load_market_data(config)

        assert [p.timestamp for p in points] == [START + timedelta(days=d) for d in range(2, 6)]


class TestSyntheticDataSource:
    """随机行情测试"""

    @pytest.mark.asyncio
    async def test_deterministic_per_symbol(self):
        source = SyntheticDataSource(seed=1)
        end = START + timedelta(days=29)

        first = await source.get_price_history("BTC", START, end)
        second = await source.get_price_history("btc", START, end)
        other = await source.get_price_history("ETH", START, end)

        assert len(first) == 30
        assert first == second
        assert [p.price for p in first] != [p.price for p in other]

    @pytest.mark.asyncio
    async def test_empty_when_range_inverted(self):
        source = SyntheticDataSource()
        assert await source.get_price_history("BTC", START, START - timedelta(days=1)) == []


class TestTTLCache:
    """TTLCache 测试"""

    def test_evicts_least_recently_used(self):
        cache = TTLCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.get_stats()["evictions"] == 1

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            TTLCache(max_entries=0)

    def test_from_settings(self):
        cache = TTLCache.from_settings()
        assert cache.max_entries == 64
        assert cache.ttl_seconds == 300

    def test_make_key(self):
        key = TTLCache.make_key("memory", "BTC", START, None)
        assert key == ("memory", "BTC", "20240101", "-")


def _coingecko_payload(days: int = 3):
    day_ms = 24 * 3600 * 1000
    start_ms = 1_704_067_200_000  # 2024-01-01T00:00:00Z
    return {
        "prices": [[start_ms + i * day_ms, 40_000.0 + i * 100] for i in range(days)],
        "total_volumes": [[start_ms + i * day_ms, 1e9 + i] for i in range(days)],
    }


class TestCoinGeckoDataSource:
    """CoinGecko 数据源测试"""

    @pytest.mark.asyncio
    async def test_parses_market_chart(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=_coingecko_payload())

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        source = CoinGeckoDataSource(exchange_rate=1300.0, client=client)

        points = await source.get_price_history("BTC", None, None)
        await source.close()

        assert requests[0].url.path == "/api/v3/coins/bitcoin/market_chart"
        assert requests[0].url.params["vs_currency"] == "usd"
        assert requests[0].url.params["days"] == "365"
        assert len(points) == 3
        assert points[0].symbol == "BTC"
        assert points[0].timestamp == datetime(2024, 1, 1)
        assert points[0].price == pytest.approx(40_000.0 * 1300.0)
        assert points[1].volume == pytest.approx(1e9 + 1)

    @pytest.mark.parametrize(
        "symbol,coin_id",
        [("BTC", "bitcoin"), ("eth", "ethereum"), ("SOL", "solana"), ("ADA", "cardano"), ("XRP", "xrp")],
    )
    def test_coin_id_mapping(self, symbol, coin_id):
        assert CoinGeckoDataSource.get_coin_id(symbol) == coin_id

    @pytest.mark.asyncio
    async def test_http_error_raises_data_error(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(429, json={}))
        )
        source = CoinGeckoDataSource(client=client)

        with pytest.raises(DataError):
            await source.get_price_history("BTC", None, None)
        await source.close()

    @pytest.mark.asyncio
    async def test_missing_prices_raises_data_error(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"error": "x"}))
        )
        source = CoinGeckoDataSource(client=client)

        with pytest.raises(DataError, match="prices"):
            await source.get_price_history("ETH", None, None)
        await source.close()

    @pytest.mark.asyncio
    async def test_failed_symbol_is_skipped_by_loader(self, backtest_config, series_factory):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        loader = DataLoader(data_source=CoinGeckoDataSource(client=client))

        points = await loader.load_market_data(replace(backtest_config, symbols=["BTC", "ETH"]))

        assert points == []

    @pytest.mark.asyncio
    async def test_timezone_aware_start_date(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=_coingecko_payload())

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        source = CoinGeckoDataSource(client=client)
        start = datetime.now(timezone.utc) - timedelta(days=10)

        points = await source.get_price_history("BTC", start, None)
        await source.close()

        assert requests[0].url.params["days"] == "11"
        assert len(points) == 3
