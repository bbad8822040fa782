from fastapi.testclient import TestClient

from authflow.main import create_app

EMAIL = "ann@x.com"
PASSWORD = "Secret123!"


def register(client, email=EMAIL, password=PASSWORD, name="Ann"):
    return client.post(
        "/v1/auth/register",
        json={"name": name, "email": email, "password": password},
    )


def register_verified(client, mailer, email=EMAIL):
    assert register(client, email=email).status_code == 201
    response = client.post(
        "/v1/auth/verify-email",
        json={"email": email, "code": mailer.last_code(email)},
    )
    assert response.status_code == 200
    return response.json()


def login(client, email=EMAIL, password=PASSWORD):
    return client.post("/v1/auth/login", json={"email": email, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"] == "healthy"


def test_security_headers(client):
    response = client.get("/health")
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["X-Request-ID"]


def test_register_returns_profile_without_tokens(client, mailer):
    response = register(client, email="Ann@X.com")

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == EMAIL
    assert body["is_verified"] is False
    assert "password_hash" not in body
    assert "access_token" not in body
    assert len(mailer.messages_to(EMAIL)) == 1


def test_register_duplicate(client):
    register(client)
    response = register(client)
    assert response.status_code == 409
    assert response.json()["code"] == "duplicate_email"


def test_register_weak_password(client):
    response = register(client, password="password")
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_register_invalid_email_is_rejected_by_schema(client):
    response = register(client, email="not-an-email")
    assert response.status_code == 422


def test_full_flow(client, mailer):
    assert register(client).status_code == 201
    code = mailer.last_code(EMAIL)

    # Not verified yet
    response = login(client)
    assert response.status_code == 403
    assert response.json()["code"] == "not_verified"

    wrong = "000000" if code != "000000" else "111111"
    response = client.post("/v1/auth/verify-email", json={"email": EMAIL, "code": wrong})
    assert response.status_code == 400
    assert response.json()["code"] == "code_mismatch"

    response = client.post("/v1/auth/verify-email", json={"email": EMAIL, "code": code})
    assert response.status_code == 200
    assert response.json()["is_verified"] is True

    response = login(client)
    assert response.status_code == 200
    tokens = response.json()
    assert tokens["token_type"] == "bearer"
    assert tokens["expires_in"] == 15 * 60
    assert "refresh_token" in response.cookies

    response = client.get("/v1/users/me", headers=bearer(tokens["access_token"]))
    assert response.status_code == 200
    assert response.json()["email"] == EMAIL
    assert response.json()["name"] == "Ann"

    response = login(client, password="wrong-password")
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


def test_login_unknown_email_matches_wrong_password(client, mailer):
    register_verified(client, mailer)

    unknown = login(client, email="nobody@x.com")
    wrong = login(client, password="wrong-password")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


def test_expired_verification_code(client, mailer, clock):
    register(client)
    code = mailer.last_code(EMAIL)
    clock.advance(hours=1)

    response = client.post("/v1/auth/verify-email", json={"email": EMAIL, "code": code})
    assert response.status_code == 400
    assert response.json()["code"] == "code_expired"


def test_verify_unknown_email(client):
    response = client.post(
        "/v1/auth/verify-email", json={"email": "nobody@x.com", "code": "123456"}
    )
    assert response.status_code == 404


def test_resend_verification(client, mailer):
    register(client)
    response = client.post("/v1/auth/resend-verification", json={"email": EMAIL})
    assert response.status_code == 202
    assert len(mailer.messages_to(EMAIL)) == 2


def test_me_requires_token(client):
    response = client.get("/v1/users/me")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_me_with_garbage_token(client):
    response = client.get("/v1/users/me", headers=bearer("garbage"))
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_token"


def test_expired_access_token(client, mailer, clock):
    register_verified(client, mailer)
    access = login(client).json()["access_token"]
    clock.advance(minutes=20)

    response = client.get("/v1/users/me", headers=bearer(access))
    assert response.status_code == 401
    assert response.json()["code"] == "token_expired"


def test_refresh_from_body_and_cookie(client, mailer):
    register_verified(client, mailer)
    first = login(client).json()

    response = client.post("/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
    assert response.status_code == 200
    second = response.json()
    assert second["refresh_token"] != first["refresh_token"]

    # The rotated-out token is dead
    response = client.post("/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
    assert response.status_code == 401
    assert response.json()["code"] == "token_revoked"

    # The cookie set by the last refresh still works
    response = client.post("/v1/auth/refresh")
    assert response.status_code == 200


def test_refresh_without_token(client):
    client.cookies.clear()
    response = client.post("/v1/auth/refresh")
    assert response.status_code == 401


def test_logout_revokes_tokens(client, mailer):
    register_verified(client, mailer)
    tokens = login(client).json()

    response = client.post(
        "/v1/auth/logout",
        json={"refresh_token": tokens["refresh_token"]},
        headers=bearer(tokens["access_token"]),
    )
    assert response.status_code == 200

    response = client.get("/v1/users/me", headers=bearer(tokens["access_token"]))
    assert response.status_code == 401
    assert response.json()["code"] == "token_revoked"

    response = client.post("/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401


def test_forgot_password_is_identical_for_unknown_accounts(client, mailer):
    register_verified(client, mailer)

    known = client.post("/v1/auth/forgot-password", json={"email": EMAIL})
    unknown = client.post("/v1/auth/forgot-password", json={"email": "nobody@x.com"})

    assert known.status_code == unknown.status_code == 202
    assert known.json() == unknown.json()


def test_reset_password(client, mailer):
    register_verified(client, mailer)
    client.post("/v1/auth/forgot-password", json={"email": EMAIL})
    code = mailer.last_code(EMAIL)

    response = client.post(
        "/v1/auth/reset-password",
        json={"email": EMAIL, "code": code, "new_password": "NewSecret456"},
    )
    assert response.status_code == 200

    assert login(client).status_code == 401
    assert login(client, password="NewSecret456").status_code == 200

    response = client.post(
        "/v1/auth/reset-password",
        json={"email": EMAIL, "code": code, "new_password": "Another789x"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "code_mismatch"


def test_update_profile_and_change_password(client, mailer):
    register_verified(client, mailer)
    access = login(client).json()["access_token"]

    response = client.patch("/v1/users/me", json={"name": "Ann Lee"}, headers=bearer(access))
    assert response.status_code == 200
    assert response.json()["name"] == "Ann Lee"

    response = client.post(
        "/v1/users/me/password",
        json={"current_password": "wrong-password", "new_password": "NewSecret456"},
        headers=bearer(access),
    )
    assert response.status_code == 401

    response = client.post(
        "/v1/users/me/password",
        json={"current_password": PASSWORD, "new_password": "NewSecret456"},
        headers=bearer(access),
    )
    assert response.status_code == 200
    assert login(client, password="NewSecret456").status_code == 200


def test_rate_limit_on_auth_endpoints(settings, mailer, clock):
    limited = settings.model_copy(update={"rate_limit_max_requests": 3})
    app = create_app(settings=limited, mailer=mailer, clock=clock)

    with TestClient(app) as client:
        statuses = [
            client.post("/v1/auth/forgot-password", json={"email": EMAIL}).status_code
            for _ in range(4)
        ]
        assert statuses == [202, 202, 202, 429]

        blocked = client.post("/v1/auth/forgot-password", json={"email": EMAIL})
        assert blocked.headers["Retry-After"]
        assert blocked.json()["code"] == "rate_limited"

        # Other paths are not counted
        assert client.get("/health").status_code == 200


def test_forwarded_header_does_not_reset_the_budget(settings, mailer, clock):
    limited = settings.model_copy(update={"rate_limit_max_requests": 2})
    app = create_app(settings=limited, mailer=mailer, clock=clock)

    with TestClient(app) as client:
        statuses = [
            client.post(
                "/v1/auth/forgot-password",
                json={"email": EMAIL},
                headers={"X-Forwarded-For": f"203.0.113.{i}"},
            ).status_code
            for i in range(5)
        ]
    assert statuses == [202, 202, 429, 429, 429]


def test_access_token_is_only_read_from_authorization_header(client, mailer):
    register_verified(client, mailer)
    access = login(client).json()["access_token"]

    client.cookies.set("access_token", access)
    assert client.get("/v1/users/me").status_code == 401
    assert client.get("/v1/users/me", headers=bearer(access)).status_code == 200
