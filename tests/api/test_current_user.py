from datetime import timedelta
from services.token_service import TokenService, hash_token


async def test_me(client, verified_user, auth_tokens):
    response = await client.get("/auth/me", headers={"Authorization": f"Bearer {auth_tokens['access_token']}"})

    assert response.status_code == 200
    assert response.json()["email"] == verified_user.email
    assert response.json()["name"] == verified_user.name


async def test_me_without_token(client):
    response = await client.get("/auth/me")

    assert response.status_code == 401


async def test_me_with_refresh_token(client, auth_tokens):
    response = await client.get("/auth/me", headers={"Authorization": f"Bearer {auth_tokens['refresh_token']}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"
    assert response.headers["WWW-Authenticate"] == "Bearer"


async def test_expired_and_forged_look_the_same(client, verified_user):
    expired = TokenService().issue_access(
        str(verified_user.id), verified_user.email, expires_delta=timedelta(seconds=-10)
    )
    forged = TokenService(access_secret="attacker-key").issue_access(str(verified_user.id), verified_user.email)

    expired_response = await client.get("/auth/me", headers={"Authorization": f"Bearer {expired}"})
    forged_response = await client.get("/auth/me", headers={"Authorization": f"Bearer {forged}"})

    assert expired_response.status_code == forged_response.status_code == 401
    assert expired_response.json() == forged_response.json()


async def test_list_sessions(client, auth_tokens):
    response = await client.get(
        "/auth/sessions",
        headers={"Authorization": f"Bearer {auth_tokens['access_token']}"}
    )

    assert response.status_code == 200
    sessions = response.json()["sessions"]
    assert len(sessions) == 1
    assert sessions[0]["ip_address"] == "127.0.0.1"


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert "redis" in response.json()


async def test_request_id_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


async def test_revoke_own_session(client, auth_tokens):
    headers = {"Authorization": f"Bearer {auth_tokens['access_token']}"}
    session_id = (await client.get("/auth/sessions", headers=headers)).json()["sessions"][0]["session_id"]

    response = await client.delete(f"/auth/sessions/{session_id}", headers=headers)

    assert response.status_code == 200
    assert (await client.get("/auth/sessions", headers=headers)).json()["sessions"] == []

    # The refresh token behind the session is gone too
    refresh = await client.post("/auth/refresh", json={"refresh_token": auth_tokens["refresh_token"]})
    assert refresh.status_code == 401


async def test_revoke_unknown_session(client, auth_tokens):
    response = await client.delete(
        "/auth/sessions/not-a-session",
        headers={"Authorization": f"Bearer {auth_tokens['access_token']}"}
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Session not found"


async def test_cannot_revoke_someone_elses_session(client, auth_tokens, ledger, sessions):
    other = await ledger.issue_for_login("999", "other@example.com")
    other_session_id = hash_token(other.refresh_token)

    response = await client.delete(
        f"/auth/sessions/{other_session_id}",
        headers={"Authorization": f"Bearer {auth_tokens['access_token']}"}
    )

    assert response.status_code == 404
    assert await sessions.exists(other_session_id)
