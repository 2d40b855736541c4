from unittest.mock import patch
from core.config import settings


async def login(client, email="verified@example.com", password="WrongPassword1!", ip="10.0.0.1"):
    return await client.post(
        "/auth/login",
        json={"email": email, "password": password},
        headers={"X-Forwarded-For": ip}
    )


async def test_rate_limit_headers(client, verified_user):
    response = await login(client, password="TestPassword123!")

    assert response.status_code == 200
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "4"
    assert int(response.headers["X-RateLimit-Reset"]) > 0


async def test_login_limited_after_five_attempts(client, verified_user):
    for expected_remaining in ["4", "3", "2", "1", "0"]:
        response = await login(client, password="TestPassword123!")
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == expected_remaining

    response = await login(client)

    assert response.status_code == 429
    assert response.json()["detail"] == "Too many login attempts. Please try again later."
    assert int(response.headers["Retry-After"]) > 0
    assert response.headers["X-RateLimit-Remaining"] == "0"


async def test_limit_is_per_client(client, verified_user):
    for _ in range(6):
        await login(client, ip="10.0.0.1")

    response = await login(client, password="TestPassword123!", ip="10.0.0.2")

    assert response.status_code == 200


async def test_limits_are_per_endpoint(client, verified_user):
    for _ in range(6):
        await login(client)

    response = await client.post(
        "/auth/request-password-reset",
        json={"email": verified_user.email},
        headers={"X-Forwarded-For": "10.0.0.1"}
    )

    assert response.status_code == 200


async def test_rate_limiter_fails_open(client, redis_server):
    redis_server.connected = False

    # Unknown user never touches Redis past the limiter
    response = await login(client, email="ghost@example.com")

    assert response.status_code == 401


async def test_rate_limiting_can_be_disabled(client, verified_user):
    with patch.object(settings, "RATE_LIMIT_ENABLED", False):
        for _ in range(7):
            response = await login(client, password="TestPassword123!")
            assert response.status_code == 200
            assert "X-RateLimit-Limit" not in response.headers
