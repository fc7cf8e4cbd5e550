import hmac, hashlib, time
from typing import Tuple
from django.conf import settings

from core.exceptions import InvalidSignature

# Inbound callback headers
HDR_SIG = "X-Callback-Signature"
HDR_TS = "X-Callback-Timestamp"
META_SIG = "HTTP_X_CALLBACK_SIGNATURE"
META_TS = "HTTP_X_CALLBACK_TIMESTAMP"
ALGO = "HMAC-SHA256"

def sign_payload(secret: bytes, provider: str, body_bytes: bytes, ts_ms: int | None = None) -> Tuple[str, str]:
    """
    Signature = hex(HMAC_SHA256(secret, f"{ts}\n{provider}\n{body_sha256}"))
    Returns (timestamp_ms_str, hex_signature)
    """
    if ts_ms is None:
        ts_ms = int(time.time() * 1000)
    body_sha = hashlib.sha256(body_bytes).hexdigest()
    to_sign = f"{ts_ms}\n{provider}\n{body_sha}".encode("utf-8")
    sig = hmac.new(secret, to_sign, hashlib.sha256).hexdigest()
    return str(ts_ms), sig

def verify_signature(provider: str, body_bytes: bytes, ts_raw: str | None, sig_hex: str | None,
                     now_ms: int | None = None) -> None:
    """Raises InvalidSignature unless the callback is signed with the provider's secret, within the time window."""
    secret = settings.PROVIDER_CALLBACK_SECRETS.get(provider)
    if not secret:
        raise InvalidSignature(f"No callback secret configured for {provider}")
    if not ts_raw or not sig_hex:
        raise InvalidSignature("Missing callback signature headers")
    try:
        ts_ms = int(ts_raw)
    except ValueError:
        raise InvalidSignature("Invalid callback timestamp")

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if abs(now_ms - ts_ms) > settings.CALLBACK_TIMESKEW_MS:
        raise InvalidSignature("Callback timestamp skew too large")

    _, expected = sign_payload(secret.encode("utf-8"), provider, body_bytes, ts_ms=ts_ms)
    if not hmac.compare_digest(expected, sig_hex):
        raise InvalidSignature("Invalid callback signature")
