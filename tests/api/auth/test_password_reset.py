from models.users import User
from schemas.token_schemas import EphemeralTokenKind
from utils.hashing import verify_password


async def test_request_reset_existing_email(client, verified_user, store):
    response = await client.post("/auth/request-password-reset", json={"email": verified_user.email})

    assert response.status_code == 200
    assert "password reset link" in response.json()["message"]

    keys = [key async for key in store.scan_iter(match="reset_token:*")]
    assert len(keys) == 1


async def test_request_reset_unknown_email_same_response(client, store):
    response = await client.post("/auth/request-password-reset", json={"email": "ghost@example.com"})

    assert response.status_code == 200
    assert "password reset link" in response.json()["message"]
    assert [key async for key in store.scan_iter(match="reset_token:*")] == []


async def test_reset_password_success(client, session, verified_user, ephemeral, auth_tokens):
    token = await ephemeral.create(str(verified_user.id), verified_user.email, EphemeralTokenKind.PASSWORD_RESET)

    response = await client.post("/auth/reset-password", json={
        "token": token,
        "new_password": "BrandNewPass456?"
    })

    assert response.status_code == 200
    assert response.json()["message"] == "Password reset successful"

    session.expire_all()
    user = session.query(User).filter(User.id == verified_user.id).first()
    assert verify_password("BrandNewPass456?", user.hashed_password)

    # Every device was logged out
    refresh = await client.post("/auth/refresh", json={"refresh_token": auth_tokens["refresh_token"]})
    assert refresh.status_code == 401

    login = await client.post("/auth/login", json={
        "email": verified_user.email,
        "password": "BrandNewPass456?"
    })
    assert login.status_code == 200


async def test_reset_token_is_single_use(client, verified_user, ephemeral):
    token = await ephemeral.create(str(verified_user.id), verified_user.email, EphemeralTokenKind.PASSWORD_RESET)

    first = await client.post("/auth/reset-password", json={"token": token, "new_password": "BrandNewPass456?"})
    second = await client.post("/auth/reset-password", json={"token": token, "new_password": "OtherPass789#"})

    assert first.status_code == 200
    assert second.status_code == 401


async def test_reset_with_verification_token_rejected(client, verified_user, ephemeral):
    token = await ephemeral.create(
        str(verified_user.id), verified_user.email, EphemeralTokenKind.EMAIL_VERIFICATION
    )

    response = await client.post("/auth/reset-password", json={"token": token, "new_password": "BrandNewPass456?"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired password reset token"


async def test_reset_weak_password(client, verified_user, ephemeral):
    token = await ephemeral.create(str(verified_user.id), verified_user.email, EphemeralTokenKind.PASSWORD_RESET)

    response = await client.post("/auth/reset-password", json={"token": token, "new_password": "short"})

    assert response.status_code == 422
    # Validation failed before the token was touched
    assert await ephemeral.verify(token, EphemeralTokenKind.PASSWORD_RESET) is not None
