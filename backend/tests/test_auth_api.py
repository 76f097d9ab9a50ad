from datetime import timedelta

from sweetshop import auth

from conftest import bearer


def register(client, **overrides):
    body = {"name": "Asha", "email": "asha@example.com", "password": "sweet-tooth"}
    body.update(overrides)
    return client.post("/v1/auth/register", json=body)


def test_register_creates_customer_by_default(client):
    resp = register(client, email="  Asha@Example.COM ")
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully."
    assert body["data"]["email"] == "asha@example.com"
    assert body["data"]["role"] == "CUSTOMER"
    assert "password" not in body["data"]


def test_register_rejects_duplicate_email_case_insensitively(client):
    assert register(client).status_code == 201
    resp = register(client, email="ASHA@example.com")
    assert resp.status_code == 409
    assert resp.json() == {
        "success": False,
        "message": "An account with this email already exists.",
        "data": None,
    }


def test_register_reports_field_errors(client):
    resp = register(client, name=" ", password="short")
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Invalid input for name."
    fields = [error["field"] for error in body["data"]]
    assert fields == ["name", "password"]


def test_register_rejects_unknown_role(client):
    resp = register(client, role="ROOT")
    assert resp.status_code == 400
    assert resp.json()["data"][0]["field"] == "role"


def test_register_without_body(client):
    resp = client.post("/v1/auth/register")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Request body is required."


def test_login_is_case_insensitive_on_email(client):
    register(client)
    resp = client.post("/v1/auth/login", json={"email": "ASHA@EXAMPLE.COM", "password": "sweet-tooth"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["email"] == "asha@example.com"

    claims = auth.verify_token(data["token"])
    assert claims.id == data["user"]["id"]
    assert claims.role == "CUSTOMER"


def test_login_failures(client):
    register(client)

    resp = client.post("/v1/auth/login", json={"email": "asha@example.com"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Email and password are required."

    resp = client.post("/v1/auth/login", json={"email": "not-an-email", "password": "x"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Please provide a valid email address."

    # unknown email and wrong password look the same
    for email, password in (("nobody@example.com", "sweet-tooth"), ("asha@example.com", "wrong-pass")):
        resp = client.post("/v1/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid email or password."


def test_verify_returns_current_user(client):
    user = register(client).json()["data"]
    resp = client.get("/v1/auth/verify", headers=bearer(user["id"], user["role"]))
    assert resp.status_code == 200
    assert resp.json()["data"] == {"valid": True, "user": user}


def test_verify_rejects_token_of_deleted_user(client):
    resp = client.get("/v1/auth/verify", headers=bearer(999, "CUSTOMER"))
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "User not found.", "data": {"valid": False, "user": None}}


def test_verify_without_token(client):
    resp = client.get("/v1/auth/verify")
    assert resp.status_code == 401
    assert resp.json()["data"] == {"valid": False, "user": None}
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_authorization_header_messages(client):
    cases = [
        ({}, "Authorization header is required."),
        ({"Authorization": "Token abc"}, "Bearer token is required."),
        ({"Authorization": "Bearer not.a.jwt"}, "Invalid token."),
    ]
    for headers, message in cases:
        resp = client.get("/v1/user/orders", headers=headers)
        assert resp.status_code == 401, message
        assert resp.json()["message"] == message


def test_expired_token_is_reported(client):
    token = auth.create_access_token(1, "CUSTOMER", expires_delta=timedelta(minutes=-1))
    resp = client.get("/v1/user/orders", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Token has expired."


def test_admin_routes_reject_customers(client, customer_headers):
    resp = client.post("/v1/admin/categories", json={"name": "Ladoo"}, headers=customer_headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "Admin access required."

    resp = client.get("/v1/admin/orders")
    assert resp.status_code == 401


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "Welcome to the Sweet Shop API!"}
    body = client.get("/health").json()
    assert body["success"] is True
    assert body["data"]["database"] == "ok"
    assert body["data"]["cache"] == {"status": "unavailable"}


def test_unknown_route_uses_envelope(client):
    resp = client.get("/v1/user/nothing-here")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["data"] is None


def test_register_rejects_values_longer_than_their_columns(client):
    resp = register(client, name="N" * 256, email=("e" * 250) + "@example.com")
    assert resp.status_code == 400
    assert resp.json()["data"] == [
        {"field": "name", "message": "Name must be at most 255 characters."},
        {"field": "email", "message": "Email must be at most 255 characters."},
    ]
