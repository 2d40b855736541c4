from services.token_service import TokenService, Ok
from schemas.token_schemas import TokenKind


async def test_login_success(client, verified_user):
    response = await client.post("/auth/login", json={
        "email": verified_user.email,
        "password": "TestPassword123!"
    })

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Login successful"
    assert data["user"]["id"] == verified_user.id

    tokens = data["tokens"]
    assert tokens["token_type"] == "bearer"

    result = TokenService().verify_access(tokens["access_token"])
    assert isinstance(result, Ok)
    assert result.claims.user_id == str(verified_user.id)
    assert result.claims.email == verified_user.email
    assert result.claims.kind == TokenKind.ACCESS


async def test_login_is_case_insensitive_on_email(client, verified_user):
    response = await client.post("/auth/login", json={
        "email": verified_user.email.upper(),
        "password": "TestPassword123!"
    })

    assert response.status_code == 200


async def test_login_wrong_password(client, verified_user):
    response = await client.post("/auth/login", json={
        "email": verified_user.email,
        "password": "WrongPassword123!"
    })

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


async def test_login_nonexistent_user(client):
    response = await client.post("/auth/login", json={
        "email": "nonexistent@example.com",
        "password": "TestPassword123!"
    })

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


async def test_login_inactive_user(client, session, verified_user):
    verified_user.is_active = False
    session.commit()

    response = await client.post("/auth/login", json={
        "email": verified_user.email,
        "password": "TestPassword123!"
    })

    assert response.status_code == 401


async def test_each_login_is_a_separate_session(client, verified_user):
    for _ in range(2):
        response = await client.post("/auth/login", json={
            "email": verified_user.email,
            "password": "TestPassword123!"
        })
    access = response.json()["tokens"]["access_token"]

    sessions = await client.get("/auth/sessions", headers={"Authorization": f"Bearer {access}"})

    assert len(sessions.json()["sessions"]) == 2


async def test_login_store_down_returns_503(client, redis_server, verified_user):
    redis_server.connected = False

    response = await client.post("/auth/login", json={
        "email": verified_user.email,
        "password": "TestPassword123!"
    })

    assert response.status_code == 503
    assert response.json()["detail"] == "Service temporarily unavailable"
