"""报价源（CoinStats REST / 本地随机游走）。

报价源只负责一次批量拉取：`fetch_batch(symbols) -> {symbol: price}`。
拉取失败直接抛异常；部分资产缺失时结果里不包含这些资产。
"""

from __future__ import annotations

import random
from typing import Mapping, Protocol, Sequence

import requests

from shared.config.schema import DEFAULT_BASE_PRICES, DEFAULT_COIN_IDS, FeedConfig
from shared.utils.logging import setup_logger


class QuoteFetchError(RuntimeError):
    """报价源返回了无法解析的结果。"""


class QuoteProvider(Protocol):
    def fetch_batch(self, symbols: Sequence[str]) -> dict[str, float]:
        ...


class CoinStatsQuoteProvider:
    """CoinStats 公共行情接口。

    一次 GET `{base_url}/coins?currency=USD&limit=100`，按 coin id 匹配关注的资产。

    Parameters
    ----------
    base_url:
        API 根地址。
    api_key:
        放在 `X-API-KEY` 请求头里；为空时不带该头。
    coin_ids:
        资产代码 -> CoinStats coin id。
    timeout_s:
        单次 HTTP 请求超时（秒）。
    """

    def __init__(
        self,
        base_url: str = "https://openapiv1.coinstats.app",
        api_key: str | None = None,
        coin_ids: Mapping[str, str] | None = None,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.coin_ids = dict(coin_ids or DEFAULT_COIN_IDS)
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.logger = setup_logger("quotes")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return headers

    def fetch_batch(self, symbols: Sequence[str]) -> dict[str, float]:
        url = f"{self.base_url}/coins"
        resp = self.session.get(
            url,
            params={"currency": "USD", "limit": 100},
            headers=self._headers(),
            timeout=self.timeout_s,
        )
        resp.raise_for_status()
        data = resp.json()
        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, list):
            raise QuoteFetchError("CoinStats response has no 'result' array")

        by_id = {str(item.get("id")): item for item in result if isinstance(item, dict)}
        prices: dict[str, float] = {}
        for symbol in symbols:
            coin_id = self.coin_ids.get(symbol)
            if coin_id is None:
                self.logger.debug("No coin id mapped for %s", symbol)
                continue
            item = by_id.get(coin_id)
            if item is None:
                continue
            try:
                price = float(item.get("price") or 0.0)
            except (TypeError, ValueError):
                continue
            if price > 0:
                prices[symbol] = price
        return prices


class FakeQuoteProvider:
    """本地随机游走报价，便于离线开发/测试。"""

    def __init__(
        self,
        base_prices: Mapping[str, float] | None = None,
        *,
        volatility: float = 0.002,
        rng: random.Random | None = None,
        seed: int | None = None,
    ):
        self._prices = dict(base_prices or DEFAULT_BASE_PRICES)
        self.volatility = volatility
        self.rng = rng or random.Random(seed)

    def fetch_batch(self, symbols: Sequence[str]) -> dict[str, float]:
        out: dict[str, float] = {}
        for symbol in symbols:
            last = self._prices.get(symbol)
            if last is None:
                continue
            nxt = last * (1.0 + self.rng.gauss(0.0, self.volatility))
            if nxt <= 0:
                nxt = last
            self._prices[symbol] = nxt
            out[symbol] = nxt
        return out


def build_quote_provider(cfg: FeedConfig) -> QuoteProvider:
    """根据配置选择报价源。"""
    if cfg.provider == "fake":
        return FakeQuoteProvider(cfg.fake_base_prices, seed=cfg.fake_seed)
    if cfg.provider == "coinstats":
        return CoinStatsQuoteProvider(
            base_url=cfg.base_url,
            api_key=cfg.api_key,
            coin_ids=cfg.coin_ids,
            timeout_s=cfg.timeout_s,
        )
    raise ValueError(f"Unknown quote provider: {cfg.provider}")
