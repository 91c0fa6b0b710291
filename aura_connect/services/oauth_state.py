# aura_connect/services/oauth_state.py
"""
OAuth ``state`` tokens.

The state is ``base64url(json) + "." + hex(hmac_sha256(secret, base64url(json)))``
where the JSON carries ``userId``, ``platform``, ``timestamp`` (epoch ms) and a
random ``nonce``. Nothing is stored when a state is issued; the callback
verifies the signature and the age, then claims the nonce once.
"""
import base64
import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from aura_connect.services.errors import ExpiredState, InvalidState


@dataclass(frozen=True)
class StatePayload:
    user_id: str
    platform: str
    timestamp: int
    nonce: str


def now_ms() -> int:
    return int(time.time() * 1000)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(secret: str, encoded: str) -> str:
    return hmac.new(secret.encode("utf-8"), encoded.encode("ascii"), hashlib.sha256).hexdigest()


def encode_state(user_id: str, platform: str, secret: str, now: Optional[int] = None) -> str:
    payload = {
        "userId": user_id,
        "platform": platform,
        "timestamp": now_ms() if now is None else now,
        "nonce": secrets.token_urlsafe(12),
    }
    encoded = _b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{encoded}.{_sign(secret, encoded)}"


def decode_state(state: str, secret: str) -> StatePayload:
    if not state or "." not in state:
        raise InvalidState("state is malformed")
    encoded, signature = state.rsplit(".", 1)
    try:
        expected = _sign(secret, encoded)
    except UnicodeEncodeError:
        raise InvalidState("state is malformed")
    if not signature.isascii() or not hmac.compare_digest(signature, expected):
        raise InvalidState("state signature mismatch")
    try:
        data = json.loads(_b64decode(encoded))
        return StatePayload(
            user_id=str(data["userId"]),
            platform=str(data["platform"]),
            timestamp=int(data["timestamp"]),
            nonce=str(data["nonce"]),
        )
    except (ValueError, TypeError, KeyError) as exc:
        raise InvalidState(f"state payload unreadable: {exc}")


def check_freshness(payload: StatePayload, max_age_ms: int, now: Optional[int] = None) -> None:
    current = now_ms() if now is None else now
    age = current - payload.timestamp
    if age > max_age_ms:
        raise ExpiredState("authorization link has expired", details={"age_ms": age})
    if age < -max_age_ms:
        raise InvalidState("state timestamp is in the future")
