import base64
import json

import pytest

from aura_connect.services.errors import ExpiredState, InvalidState
from aura_connect.services.oauth_state import _sign, check_freshness, decode_state, encode_state

SECRET = "state-secret"
NOW = 1_760_000_000_000
MAX_AGE_MS = 10 * 60 * 1000


def test_round_trip_preserves_fields():
    state = encode_state("user42", "instagram", SECRET, now=NOW)
    payload = decode_state(state, SECRET)
    assert payload.user_id == "user42"
    assert payload.platform == "instagram"
    assert payload.timestamp == NOW
    assert payload.nonce


def test_state_is_url_safe():
    state = encode_state("user with spaces/and+signs", "gmail", SECRET, now=NOW)
    assert all(c.isalnum() or c in "-_." for c in state)
    assert decode_state(state, SECRET).user_id == "user with spaces/and+signs"


def test_each_state_carries_a_fresh_nonce():
    a = decode_state(encode_state("u", "instagram", SECRET, now=NOW), SECRET)
    b = decode_state(encode_state("u", "instagram", SECRET, now=NOW), SECRET)
    assert a.nonce != b.nonce


def test_tampered_payload_is_rejected():
    state = encode_state("user42", "instagram", SECRET, now=NOW)
    encoded, signature = state.rsplit(".", 1)
    forged = base64.urlsafe_b64encode(
        json.dumps({"userId": "attacker", "platform": "instagram", "timestamp": NOW, "nonce": "n"}).encode()
    ).decode().rstrip("=")
    with pytest.raises(InvalidState):
        decode_state(f"{forged}.{signature}", SECRET)


def test_wrong_secret_is_rejected():
    state = encode_state("user42", "instagram", SECRET, now=NOW)
    with pytest.raises(InvalidState):
        decode_state(state, "another-secret")


@pytest.mark.parametrize("state", ["", "no-dot-here", "abc.def", "!!!.???", "é.é"])
def test_malformed_state_is_invalid(state):
    with pytest.raises(InvalidState):
        decode_state(state, SECRET)


def test_signed_but_unreadable_payload_is_invalid():
    encoded = base64.urlsafe_b64encode(b"not json at all").decode().rstrip("=")
    with pytest.raises(InvalidState):
        decode_state(f"{encoded}.{_sign(SECRET, encoded)}", SECRET)


def test_signed_payload_missing_keys_is_invalid():
    encoded = base64.urlsafe_b64encode(json.dumps({"userId": "u"}).encode()).decode().rstrip("=")
    with pytest.raises(InvalidState):
        decode_state(f"{encoded}.{_sign(SECRET, encoded)}", SECRET)


def test_state_exactly_at_max_age_is_accepted():
    payload = decode_state(encode_state("u", "instagram", SECRET, now=NOW - MAX_AGE_MS), SECRET)
    check_freshness(payload, MAX_AGE_MS, now=NOW)


def test_state_one_millisecond_past_max_age_is_expired():
    payload = decode_state(encode_state("u", "instagram", SECRET, now=NOW - MAX_AGE_MS - 1), SECRET)
    with pytest.raises(ExpiredState) as exc_info:
        check_freshness(payload, MAX_AGE_MS, now=NOW)
    assert exc_info.value.code == "expired_state"


def test_slightly_future_timestamp_is_tolerated():
    payload = decode_state(encode_state("u", "instagram", SECRET, now=NOW + 5000), SECRET)
    check_freshness(payload, MAX_AGE_MS, now=NOW)


def test_far_future_timestamp_is_invalid():
    payload = decode_state(encode_state("u", "instagram", SECRET, now=NOW + MAX_AGE_MS + 1), SECRET)
    with pytest.raises(InvalidState):
        check_freshness(payload, MAX_AGE_MS, now=NOW)


def test_non_ascii_signature_is_invalid():
    encoded = encode_state("user42", "instagram", SECRET, now=NOW).rsplit(".", 1)[0]
    with pytest.raises(InvalidState):
        decode_state(f"{encoded}.é", SECRET)
