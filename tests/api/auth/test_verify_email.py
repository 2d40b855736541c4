from models.users import User
from schemas.token_schemas import EphemeralTokenKind


async def register(client, email="pending@example.com"):
    response = await client.post("/auth/register", json={
        "email": email,
        "password": "TestPassword123!",
        "name": "Pending User"
    })
    assert response.status_code == 201
    return response.json()["user"]


async def test_verify_email_success(client, session, ephemeral):
    user = await register(client)
    token = await ephemeral.create(str(user["id"]), user["email"], EphemeralTokenKind.EMAIL_VERIFICATION)

    response = await client.post("/auth/verify-email", json={"token": token})

    assert response.status_code == 200
    assert response.json()["message"] == "Email verified successfully"

    session.expire_all()
    assert session.query(User).filter(User.id == user["id"]).first().is_verified is True


async def test_registration_issues_verification_token(client, store):
    await register(client)

    keys = [key async for key in store.scan_iter(match="verify_token:*")]
    assert len(keys) == 1


async def test_verify_email_invalid_token(client):
    response = await client.post("/auth/verify-email", json={"token": "f" * 64})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired verification token"


async def test_verify_email_token_single_use(client, ephemeral):
    user = await register(client)
    token = await ephemeral.create(str(user["id"]), user["email"], EphemeralTokenKind.EMAIL_VERIFICATION)

    assert (await client.post("/auth/verify-email", json={"token": token})).status_code == 200
    assert (await client.post("/auth/verify-email", json={"token": token})).status_code == 401


async def test_resend_verification_replaces_old_tokens(client, store):
    await register(client)
    before = {key async for key in store.scan_iter(match="verify_token:*")}

    response = await client.post("/auth/resend-verification", json={"email": "pending@example.com"})

    assert response.status_code == 200
    after = {key async for key in store.scan_iter(match="verify_token:*")}
    assert len(after) == 1
    assert after.isdisjoint(before)


async def test_resend_verification_unknown_email(client):
    response = await client.post("/auth/resend-verification", json={"email": "ghost@example.com"})

    assert response.status_code == 200
    assert "verification link" in response.json()["message"]
