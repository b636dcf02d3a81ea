import json
import os
import sys

from dotenv import load_dotenv

from signalgate.core.errors import ExchangeError
from signalgate.exchange.binance.client import BinanceFuturesClient


def main() -> int:
    """Sign a positionRisk request for DEFAULT_PAIR and print what Binance says."""
    load_dotenv()

    key = os.getenv("BINANCE_API_KEY", "").strip()
    secret = os.getenv("BINANCE_API_SECRET", "").strip()
    base = os.getenv("BINANCE_FAPI_BASE_URL", "https://testnet.binancefuture.com").strip()
    recv = os.getenv("BINANCE_RECV_WINDOW", "5000").strip()
    pair = os.getenv("DEFAULT_PAIR", "ETHUSDT").strip().upper()

    if not key or not secret:
        print("Missing BINANCE_API_KEY or BINANCE_API_SECRET", file=sys.stderr)
        return 2

    client = BinanceFuturesClient(key, secret, base, recv_window=int(recv))
    try:
        print("time offset ms:", client.sync_time())
        print("price:", client.last_price(pair))
        print("positionAmt:", client.get_position_amt(pair))
        print(json.dumps(client.position_risk(pair), indent=2)[:800])
    except ExchangeError as e:
        print(f"FAILED: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
