import hmac
import hashlib
from urllib.parse import urlencode


def build_query(params: dict) -> str:
    # insertion order is kept, so the signed string is deterministic
    return urlencode(params, doseq=True)


def sign(secret: str, query_string: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        query_string.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def signed_query(secret: str, params: dict) -> str:
    """Encoded params with the HMAC-SHA256 signature appended as the last param."""
    query = build_query(params)
    return f"{query}&signature={sign(secret, query)}"
