from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import pytest

from aura_connect.infrastructure.credentials_repo import CredentialStore
from aura_connect.services.oauth_state import decode_state
from aura_connect.services.webhook_registrar import WebhookRegistrar

from conftest import STATE_SECRET

GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"
IG_REFRESH = "https://graph.instagram.com/refresh_access_token"


async def seed_connection(ctx, user_id, platform, access="tok", refresh=None, expires_in=timedelta(days=30)):
    async with ctx.session() as s:
        store = CredentialStore(s, clock=ctx.utcnow)
        fields = {
            "access_token_enc": ctx.cipher.encrypt(access),
            "token_expires_at": ctx.utcnow() + expires_in if expires_in is not None else None,
        }
        if refresh:
            fields["refresh_token_enc"] = ctx.cipher.encrypt(refresh)
        await store.write(user_id, platform, fields)
        await store.write_connection(user_id, platform, {"connected": True, "username": "shop"})
        await WebhookRegistrar(s, ctx.settings.automation_base_url).register(user_id, platform, access)


async def test_connect_start_requires_bearer_token(client):
    r = await client.get("/platforms/instagram/connect/start")
    assert r.status_code == 401


async def test_connect_start_rejects_bad_token(client):
    r = await client.get("/platforms/instagram/connect/start", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


async def test_connect_start_returns_authorization_url(client, auth_headers):
    r = await client.get("/platforms/Instagram/connect/start", headers=auth_headers("user42"))
    assert r.status_code == 200
    body = r.json()
    assert body["platform"] == "instagram"
    state = parse_qs(urlsplit(body["auth_url"]).query)["state"][0]
    payload = decode_state(state, STATE_SECRET)
    assert payload.user_id == "user42"
    assert payload.platform == "instagram"


async def test_connect_redirects_to_provider(client, auth_headers):
    r = await client.get("/platforms/gmail/connect", headers=auth_headers("user42"))
    assert r.status_code == 302
    assert r.headers["location"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")


async def test_connect_start_unknown_platform(client, auth_headers):
    r = await client.get("/platforms/myspace/connect/start", headers=auth_headers("user42"))
    assert r.status_code == 404
    assert r.json()["detail"]["error"] == "unsupported_platform"


async def test_status_not_connected(client, auth_headers, add_user):
    await add_user("user42")
    r = await client.get("/platforms/instagram/status", headers=auth_headers("user42"))
    assert r.status_code == 200
    assert r.json()["connected"] is False
    assert r.json()["expired"] is False


async def test_status_connected(client, ctx, auth_headers, add_user):
    await add_user("user42")
    await seed_connection(ctx, "user42", "instagram")
    r = await client.get("/platforms/instagram/status", headers=auth_headers("user42"))
    body = r.json()
    assert body["connected"] is True
    assert body["username"] == "shop"
    assert body["expires_at"] is not None


async def test_expired_token_is_disconnected_on_read(client, ctx, auth_headers, add_user):
    await add_user("user42")
    await seed_connection(ctx, "user42", "instagram", expires_in=timedelta(minutes=-1))

    r = await client.get("/platforms/instagram/status", headers=auth_headers("user42"))

    body = r.json()
    assert body["connected"] is False
    assert body["expired"] is True
    async with ctx.session() as s:
        store = CredentialStore(s)
        token = await store.get_token("user42", "instagram")
        assert token.access_token_enc is None
        assert token.disconnected_at is not None
        assert (await store.get_connection("user42", "instagram")).connected is False
        hook = await WebhookRegistrar(s, ctx.settings.automation_base_url).get("user42", "instagram")
        assert hook.active is False


async def test_list_connections(client, ctx, auth_headers, add_user):
    await add_user("user42")
    await seed_connection(ctx, "user42", "instagram")
    await seed_connection(ctx, "user42", "gmail")
    r = await client.get("/platforms", headers=auth_headers("user42"))
    assert [c["platform"] for c in r.json()] == ["gmail", "instagram"]
    assert all(c["connected"] for c in r.json())


async def test_disconnect(client, ctx, auth_headers, add_user):
    await add_user("user42")
    await seed_connection(ctx, "user42", "gmail", refresh="1//r")

    r = await client.delete("/platforms/gmail", headers=auth_headers("user42"))

    assert r.status_code == 200
    assert r.json() == {"status": "disconnected", "platform": "gmail"}
    async with ctx.session() as s:
        token = await CredentialStore(s).get_token("user42", "gmail")
        assert token.access_token_enc is None
        assert token.refresh_token_enc is None


async def test_refresh_with_refresh_token(client, ctx, provider, auth_headers, add_user):
    await add_user("user42")
    await seed_connection(ctx, "user42", "gmail", refresh="1//r", expires_in=timedelta(minutes=5))
    provider.on("POST", GOOGLE_TOKEN, json={"access_token": "fresh", "expires_in": 3600})

    r = await client.post("/platforms/gmail/refresh", headers=auth_headers("user42"))

    assert r.status_code == 200
    assert r.json()["connected"] is True
    sent = parse_qs(provider.calls_to(GOOGLE_TOKEN)[0].content.decode())
    assert sent["grant_type"] == ["refresh_token"]
    assert sent["refresh_token"] == ["1//r"]
    async with ctx.session() as s:
        token = await CredentialStore(s).get_token("user42", "gmail")
        assert ctx.cipher.decrypt(token.access_token_enc) == "fresh"
        assert ctx.cipher.decrypt(token.refresh_token_enc) == "1//r"
        assert token.token_expires_at == ctx.utcnow() + timedelta(seconds=3600)


async def test_refresh_long_lived_instagram_token(client, ctx, provider, auth_headers, add_user):
    await add_user("user42")
    await seed_connection(ctx, "user42", "instagram", access="longtok")
    provider.on("GET", IG_REFRESH, json={"access_token": "longtok2", "expires_in": 5184000})

    r = await client.post("/platforms/instagram/refresh", headers=auth_headers("user42"))

    assert r.status_code == 200
    params = provider.calls_to(IG_REFRESH)[0].url.params
    assert params["grant_type"] == "ig_refresh_token"
    assert params["access_token"] == "longtok"


async def test_refresh_failure_is_reported(client, ctx, provider, auth_headers, add_user):
    await add_user("user42")
    await seed_connection(ctx, "user42", "gmail", refresh="1//r")
    provider.on("POST", GOOGLE_TOKEN, status=400, json={"error": "invalid_grant", "error_description": "Token revoked"})

    r = await client.post("/platforms/gmail/refresh", headers=auth_headers("user42"))

    assert r.status_code == 502
    assert r.json()["detail"] == {"error": "token_refresh_failed", "message": "Token revoked"}


async def test_refresh_when_not_connected(client, auth_headers, add_user):
    await add_user("user42")
    r = await client.post("/platforms/gmail/refresh", headers=auth_headers("user42"))
    assert r.status_code == 409
    assert r.json()["detail"]["error"] == "not_connected"


async def test_refresh_unsupported_for_facebook(client, auth_headers):
    r = await client.post("/platforms/facebook/refresh", headers=auth_headers("user42"))
    assert r.status_code == 404


async def test_webhook_lookup(client, ctx, auth_headers, add_user):
    await add_user("user42")
    r = await client.get("/platforms/instagram/webhook", headers=auth_headers("user42"))
    assert r.status_code == 404

    await seed_connection(ctx, "user42", "instagram")
    r = await client.get("/platforms/instagram/webhook", headers=auth_headers("user42"))
    assert r.json() == {
        "platform": "instagram",
        "url": "https://automation.example.com/webhook/instagram/user42",
        "active": True,
    }


async def test_request_id_is_echoed(client):
    r = await client.get("/platforms/instagram/connect/start", headers={"X-Request-ID": "req-123"})
    assert r.headers["x-request-id"] == "req-123"


@pytest.mark.parametrize(
    "params,expected_status",
    [
        ({"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"}, 200),
        ({"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "1158201444"}, 403),
        ({"hub.mode": "unsubscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"}, 403),
        ({"hub.mode": "subscribe", "hub.verify_token": "vérifié", "hub.challenge": "1158201444"}, 403),
    ],
)
async def test_instagram_subscription_handshake(client, params, expected_status):
    r = await client.get("/webhooks/instagram", params=params)
    assert r.status_code == expected_status
    if expected_status == 200:
        assert r.text == "1158201444"


async def test_user_record_is_created_once(client, auth_headers):
    headers = auth_headers("user42")
    assert (await client.get("/users/me", headers=headers)).status_code == 404

    r = await client.post("/users/me", json={"email": "owner@example.com", "display_name": "Owner"}, headers=headers)
    assert r.status_code == 200
    created = r.json()
    assert created["id"] == "user42"
    assert created["social_linked"] is False
    assert created["trial_ends_at"] is not None

    again = await client.post("/users/me", json={"email": "other@example.com"}, headers=headers)
    assert again.json()["email"] == "owner@example.com"
    assert (await client.get("/users/me", headers=headers)).json()["id"] == "user42"


async def test_user_record_rejects_bad_email(client, auth_headers):
    r = await client.post("/users/me", json={"email": "not-an-email"}, headers=auth_headers("user42"))
    assert r.status_code == 422
