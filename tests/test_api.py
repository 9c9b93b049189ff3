from urllib.parse import urlparse

from conftest import PASSWORD

API = "/api/v1"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
EMAIL = "ana@example.com"


async def register(client, email=EMAIL, name="Ana Souza", password=PASSWORD, files=None):
    return await client.post(
        f"{API}/users/",
        data={"full_name": name, "email": email, "password": password},
        files=files,
    )


async def register_and_verify(client, notifier, email=EMAIL):
    response = await register(client, email=email)
    assert response.status_code == 201
    code = notifier.last_code(email)
    response = await client.get(f"{API}/auth/verify/{code}")
    assert response.status_code == 200
    return response.json()["user"]


async def login(client, email=EMAIL, password=PASSWORD):
    return await client.post(f"{API}/auth/login", json={"email": email, "password": password})


async def auth_headers(client, notifier, email=EMAIL):
    await register_and_verify(client, notifier, email=email)
    response = await login(client, email=email)
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200


async def test_register_returns_public_projection(client, notifier):
    response = await register(client, email="Ana@Example.com")
    assert response.status_code == 201
    body = response.json()
    assert body["email"] == EMAIL
    assert body["is_verified"] is False
    for field in ("hashed_password", "password", "verification_code", "reset_password_token_hash"):
        assert field not in body
    assert notifier.last_code(EMAIL)


async def test_register_with_profile_image(client):
    response = await register(client, files={"profile_image": ("me.png", PNG, "image/png")})
    assert response.status_code == 201
    image_url = response.json()["profile_image_url"]
    assert image_url.endswith(".png")

    served = await client.get(urlparse(image_url).path)
    assert served.status_code == 200
    assert served.content == PNG


async def test_register_rejects_non_image(client):
    response = await register(client, files={"profile_image": ("cv.pdf", b"%PDF-1.4", "application/pdf")})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_failed"
    assert body["errors"][0]["field"] == "profile_image"


async def test_register_validation_errors(client):
    response = await register(client, name="A", email="not-an-email", password="weak")
    assert response.status_code == 400
    fields = {err["field"] for err in response.json()["errors"]}
    assert {"full_name", "email", "password"} <= fields


async def test_register_duplicate_email(client):
    await register(client)
    response = await register(client, email="ANA@example.com")
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


async def test_login_before_verification_is_forbidden(client):
    await register(client)
    response = await login(client)
    assert response.status_code == 403
    assert response.json()["error"] == "verification_required"


async def test_verify_by_email_and_code_is_idempotent(client, notifier):
    await register(client)
    code = notifier.last_code(EMAIL)
    first = await client.post(f"{API}/auth/verify", json={"email": EMAIL, "code": code})
    second = await client.post(f"{API}/auth/verify", json={"email": EMAIL, "code": code})
    assert first.status_code == 200
    assert first.json()["already_verified"] is False
    assert second.status_code == 200
    assert second.json()["already_verified"] is True
    assert notifier.welcomes == [EMAIL]


async def test_verify_with_malformed_or_unknown_code(client):
    assert (await client.get(f"{API}/auth/verify/12ab")).status_code == 422
    response = await client.get(f"{API}/auth/verify/123456")
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_or_expired_code"


async def test_login_and_profile(client, notifier):
    await register_and_verify(client, notifier)
    response = await login(client)
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == EMAIL
    assert body["refresh_token"]

    me = await client.get(f"{API}/users/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["full_name"] == "Ana Souza"


async def test_oauth2_token_endpoint(client, notifier):
    await register_and_verify(client, notifier)
    response = await client.post(f"{API}/auth/token", data={"username": "ANA@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["access_token"]


async def test_wrong_password_and_lockout(client, notifier):
    await register_and_verify(client, notifier)
    for _ in range(5):
        response = await login(client, password="WrongPass1")
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"

    response = await login(client)
    assert response.status_code == 423
    body = response.json()
    assert body["error"] == "account_locked"
    assert body["locked_until"]


async def test_unknown_email_same_as_wrong_password(client, notifier):
    await register_and_verify(client, notifier)
    unknown = await login(client, email="nobody@example.com")
    wrong = await login(client, password="WrongPass1")
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


async def test_protected_routes_require_token(client):
    response = await client.get(f"{API}/users/me")
    assert response.status_code == 401
    response = await client.get(f"{API}/users/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"
    assert response.headers["www-authenticate"] == "Bearer"


async def test_update_profile(client, notifier):
    headers = await auth_headers(client, notifier)
    response = await client.put(
        f"{API}/users/me",
        data={"full_name": "Ana Lima"},
        files={"profile_image": ("avatar.gif", b"GIF89a" + b"\x00" * 16, "image/gif")},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["full_name"] == "Ana Lima"
    assert body["profile_image_url"].endswith(".gif")


async def test_update_profile_rejects_invalid_name(client, notifier):
    headers = await auth_headers(client, notifier)
    response = await client.put(f"{API}/users/me", data={"full_name": "Ana 123"}, headers=headers)
    assert response.status_code == 400


async def test_change_password(client, notifier):
    headers = await auth_headers(client, notifier)
    wrong = await client.put(
        f"{API}/users/me/password",
        json={"current_password": "WrongPass1", "new_password": "Changed789"},
        headers=headers,
    )
    assert wrong.status_code == 401

    response = await client.put(
        f"{API}/users/me/password",
        json={"current_password": PASSWORD, "new_password": "Changed789"},
        headers=headers,
    )
    assert response.status_code == 200
    assert (await login(client, password="Changed789")).status_code == 200


async def test_forgot_and_reset_password(client, notifier):
    await register_and_verify(client, notifier)

    unknown = await client.post(f"{API}/auth/forgot-password", json={"email": "nobody@example.com"})
    known = await client.post(f"{API}/auth/forgot-password", json={"email": EMAIL})
    assert unknown.status_code == known.status_code == 202
    assert unknown.json() == known.json()

    token = notifier.last_reset_token(EMAIL)
    payload = {"token": token, "new_password": "NewSecret456"}
    assert (await client.post(f"{API}/auth/reset-password", json=payload)).status_code == 200

    reused = await client.post(f"{API}/auth/reset-password", json=payload)
    assert reused.status_code == 400
    assert reused.json()["error"] == "invalid_or_expired_token"

    assert (await login(client)).status_code == 401
    assert (await login(client, password="NewSecret456")).status_code == 200


async def test_reset_password_rejects_weak_password(client):
    response = await client.post(f"{API}/auth/reset-password", json={"token": "abc", "new_password": "short"})
    assert response.status_code == 422


async def test_refresh_and_logout(client, notifier):
    await register_and_verify(client, notifier)
    tokens = (await login(client)).json()

    refreshed = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["access_token"]

    rejected = await client.post(f"{API}/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert rejected.status_code == 401

    response = await client.post(
        f"{API}/auth/logout", headers={"Authorization": f"Bearer {refreshed.json()['access_token']}"}
    )
    assert response.status_code == 200
    assert response.json()["msg"] == "Logged out successfully"


async def test_resend_verification(client, notifier):
    await register(client)
    response = await client.post(f"{API}/auth/resend-verification", json={"email": EMAIL})
    assert response.status_code == 200
    assert len(notifier.verification_codes) == 2

    unknown = await client.post(f"{API}/auth/resend-verification", json={"email": "nobody@example.com"})
    assert unknown.status_code == 200
    assert unknown.json() == response.json()
