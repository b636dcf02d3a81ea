from __future__ import annotations

import logging
import random
import time

import requests

from signalgate.core.errors import ExchangeError
from signalgate.exchange.binance.signing import signed_query

log = logging.getLogger("signalgate.binance")

# Binance: "Timestamp for this request is outside of the recvWindow"
TIMESTAMP_ERROR_CODE = -1021


class BinanceFuturesClient:
    """
    Thin USDT-M futures REST client.

    Public GETs retry transient failures (rate limit, 5xx, connection).
    Signed requests are never retried blindly: only a -1021 timestamp
    rejection is re-signed and resent once, since Binance refused it.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str,
        recv_window: int = 5000,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.recv_window = recv_window
        self.timeout = float(timeout)

        # server time offset (ms); synced lazily on the first signed call
        self._time_offset_ms: int = 0
        self._time_synced = False

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------
    def _send(self, method: str, url: str, *, params=None, headers=None):
        try:
            return requests.request(
                method, url, params=params, headers=headers, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise ExchangeError(f"timeout after {self.timeout}s: {method} {url}") from e
        except requests.RequestException as e:
            raise ExchangeError(f"transport error: {method} {url} ({e})") from e

    @staticmethod
    def _json(r) -> object:
        if r.status_code >= 400:
            raise ExchangeError(
                f"Binance HTTP {r.status_code}: {r.text}", status_code=r.status_code
            )
        try:
            return r.json() if r.content else None
        except ValueError as e:
            raise ExchangeError(f"Binance returned non-JSON body: {r.text[:200]}") from e

    def _request(self, method: str, path: str, params=None, max_retries: int = 3):
        url = f"{self.base_url}{path}"
        params = dict(params or {})

        last_err: Exception | None = None
        for attempt in range(max_retries + 1):
            try:
                r = self._send(method, url, params=params)
            except ExchangeError as e:
                last_err = e
                time.sleep(min(0.4 * (2**attempt), 4.0))
                continue

            # Rate limit / temp ban
            if r.status_code in (418, 429):
                ra = r.headers.get("Retry-After")
                sleep_s = float(ra) if ra else (0.4 * (2**attempt))
                sleep_s += random.uniform(0, 0.2)
                last_err = ExchangeError(
                    f"Binance HTTP {r.status_code}", status_code=r.status_code
                )
                time.sleep(min(sleep_s, 5.0))
                continue

            # Server errors
            if r.status_code >= 500:
                last_err = ExchangeError(
                    f"Binance HTTP {r.status_code}", status_code=r.status_code
                )
                time.sleep(min(0.4 * (2**attempt), 4.0))
                continue

            return self._json(r)

        raise ExchangeError(
            f"Binance request failed after retries: {method} {path} ({last_err})"
        )

    # ---------------- TIME SYNC (PUBLIC) ----------------

    def _server_time_ms(self) -> int:
        data = self._request("GET", "/fapi/v1/time", max_retries=1)
        return int(data["serverTime"])

    def sync_time(self) -> int:
        """
        Computes and stores local->server time offset.
        Positive offset means local clock is behind server.
        """
        local_ms = int(time.time() * 1000)
        server_ms = self._server_time_ms()
        self._time_offset_ms = server_ms - local_ms
        self._time_synced = True
        return self._time_offset_ms

    def _timestamp(self) -> int:
        return int(time.time() * 1000) + int(self._time_offset_ms)

    # ---------------- SIGNED REQUESTS ----------------

    def _signed_get(self, path: str, params: dict | None = None):
        return self._signed_request("GET", path, params)

    def _signed_post(self, path: str, params: dict | None = None):
        return self._signed_request("POST", path, params)

    def _signed_url(self, path: str, params: dict) -> str:
        params["timestamp"] = self._timestamp()
        params["recvWindow"] = self.recv_window
        return f"{self.base_url}{path}?{signed_query(self.api_secret, params)}"

    def _signed_request(self, method: str, path: str, params: dict | None = None):
        if not self.api_key or not self.api_secret:
            raise ExchangeError("Missing BINANCE_API_KEY or BINANCE_API_SECRET")

        if not self._time_synced:
            try:
                self.sync_time()
            except (ExchangeError, KeyError, TypeError, ValueError) as e:
                log.warning("time sync failed, using local clock: %s", e)

        params = dict(params or {})
        headers = {"X-MBX-APIKEY": self.api_key}

        r = self._send(method, self._signed_url(path, params), headers=headers)

        # If timestamp error, sync + re-sign once
        if r.status_code == 400:
            try:
                data = r.json()
            except ValueError:
                data = None

            if isinstance(data, dict) and data.get("code") == TIMESTAMP_ERROR_CODE:
                log.warning("timestamp rejected (%s), resyncing", path)
                self.sync_time()
                r = self._send(method, self._signed_url(path, params), headers=headers)

        return self._json(r)

    # ---------------- PUBLIC ----------------

    def last_price(self, symbol: str) -> float:
        data = self._request(
            "GET",
            "/fapi/v1/ticker/price",
            params={"symbol": symbol.upper()},
        )
        return float(data["price"])

    # ---------------- ACCOUNT / TRADING ----------------

    def set_leverage(self, symbol: str, leverage: int) -> dict:
        return self._signed_post(
            "/fapi/v1/leverage",
            {"symbol": symbol.upper(), "leverage": int(leverage)},
        )

    def place_market_order(
        self, symbol: str, side: str, quantity: float, reduce_only: bool = False
    ) -> dict:
        return self._signed_post(
            "/fapi/v1/order",
            {
                "symbol": symbol.upper(),
                "side": side.upper(),
                "type": "MARKET",
                "quantity": quantity,
                "reduceOnly": "true" if reduce_only else "false",
            },
        )

    def position_risk(self, symbol: str | None = None) -> list:
        params = {}
        if symbol:
            params["symbol"] = symbol.upper()
        data = self._signed_get("/fapi/v2/positionRisk", params)
        if not isinstance(data, list):
            raise ExchangeError(f"Unexpected positionRisk response: {data!r}")
        return data

    def get_position_amt(self, symbol: str) -> float:
        """Signed position amount for symbol (long > 0, short < 0, flat 0)."""
        sym = symbol.upper()
        best = 0.0
        for p in self.position_risk(sym):
            if (p.get("symbol") or "").upper() != sym:
                continue
            amt = float(p.get("positionAmt", "0") or "0")
            # hedge mode returns one entry per side; keep the largest
            if abs(amt) > abs(best):
                best = amt
        return best
