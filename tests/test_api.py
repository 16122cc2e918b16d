"""End-to-end tests for the HTTP and WebSocket API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketDisconnect

API = "/api/v1"

PLAN_BODY = {
    "name": "5GB-Basic",
    "description": "Starter plan",
    "price": 10.00,
    "data_allowance": "5GB",
    "minutes_allowance": "unlimited",
    "sms_allowance": "100",
    "speed_4g": "40 Mbps",
    "segment": "basic",
}


def _sign_up_and_login(client, email: str, role: str) -> dict:
    response = client.post(f"{API}/auth/signup", json={
        "email": email,
        "password": "correct-horse",
        "role": role,
        "display_name": email.split("@")[0].title(),
    })
    assert response.status_code == 201, response.text
    response = client.post(f"{API}/auth/login", json={"email": email, "password": "correct-horse"})
    assert response.status_code == 200, response.text
    body = response.json()
    return {
        "id": body["user"]["id"],
        "token": body["access_token"],
        "headers": {"Authorization": f"Bearer {body['access_token']}"},
    }


@pytest.fixture
def advisor_auth(client):
    return _sign_up_and_login(client, "marta@carrierdesk.io", "advisor")


@pytest.fixture
def customer_auth(client):
    return _sign_up_and_login(client, "ana@carrierdesk.io", "customer")


@pytest.fixture
def plan_id(client, advisor_auth):
    response = client.post(f"{API}/plans", json=PLAN_BODY, headers=advisor_auth["headers"])
    assert response.status_code == 201, response.text
    return response.json()["id"]


@pytest.fixture
def approved_contract_id(client, advisor_auth, customer_auth, plan_id):
    response = client.post(f"{API}/contracts", json={"plan_id": plan_id}, headers=customer_auth["headers"])
    assert response.status_code == 201, response.text
    contract_id = response.json()["id"]
    response = client.post(
        f"{API}/contracts/{contract_id}/approve", json={}, headers=advisor_auth["headers"]
    )
    assert response.status_code == 200, response.text
    return contract_id


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-Id"]


def test_me_requires_token(client):
    assert client.get(f"{API}/auth/me").status_code in (401, 403)
    response = client.get(f"{API}/auth/me", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401


def test_signup_login_me(client, customer_auth):
    response = client.get(f"{API}/auth/me", headers=customer_auth["headers"])
    assert response.status_code == 200
    assert response.json()["email"] == "ana@carrierdesk.io"
    assert response.json()["role"] == "customer"


def test_login_with_wrong_password(client, customer_auth):
    response = client.post(f"{API}/auth/login", json={"email": "ana@carrierdesk.io", "password": "nope-nope"})
    assert response.status_code == 403


def test_logout_revokes_token(client, customer_auth):
    response = client.post(f"{API}/auth/logout", headers=customer_auth["headers"])
    assert response.status_code == 204
    assert client.get(f"{API}/auth/me", headers=customer_auth["headers"]).status_code == 401


def test_profile_update(client, customer_auth):
    response = client.patch(
        f"{API}/auth/me", json={"display_name": "Ana Lima", "phone": "+34 600 000 000"},
        headers=customer_auth["headers"],
    )
    assert response.status_code == 200
    assert response.json()["display_name"] == "Ana Lima"

    me = client.get(f"{API}/auth/me", headers=customer_auth["headers"]).json()
    assert me["phone"] == "+34 600 000 000"
    assert me["photo_url"] is None


def test_profile_photo_upload_and_remove(client, customer_auth):
    storage = MagicMock()
    storage.validate_file.return_value = (True, None, "png")
    storage.upload = AsyncMock(return_value={
        "path": f"profiles/{customer_auth['id']}-profile.png",
        "public_url": "https://storage.googleapis.com/avatars/profiles/photo.png",
    })
    storage.remove = AsyncMock()
    client.app.state.profile_photo_storage = storage

    response = client.post(
        f"{API}/auth/me/photo",
        files={"file": ("me.png", b"\x89PNG", "image/png")},
        headers=customer_auth["headers"],
    )
    assert response.status_code == 200, response.text
    assert response.json()["photo_url"].endswith("photo.png")

    response = client.delete(f"{API}/auth/me/photo", headers=customer_auth["headers"])
    assert response.status_code == 200
    assert response.json()["photo_url"] is None
    storage.remove.assert_awaited_once()


def test_password_change(client, customer_auth):
    url = f"{API}/auth/password"
    wrong = client.post(url, json={"current_password": "nope-nope", "new_password": "fresh-pass"},
                        headers=customer_auth["headers"])
    assert wrong.status_code == 403

    response = client.post(url, json={"current_password": "correct-horse", "new_password": "fresh-pass"},
                           headers=customer_auth["headers"])
    assert response.status_code == 204
    login = client.post(f"{API}/auth/login", json={"email": "ana@carrierdesk.io", "password": "fresh-pass"})
    assert login.status_code == 200


def test_password_reset_flow(client, customer_auth):
    response = client.post(f"{API}/auth/password-reset", json={"email": "ana@carrierdesk.io"})
    assert response.status_code == 202
    token = response.json()["reset_token"]
    assert token

    unknown = client.post(f"{API}/auth/password-reset", json={"email": "nobody@carrierdesk.io"})
    assert unknown.status_code == 202
    assert unknown.json()["reset_token"] is None

    confirm_url = f"{API}/auth/password-reset/confirm"
    assert client.post(confirm_url, json={"token": token, "new_password": "reset-pass"}).status_code == 204
    assert client.post(confirm_url, json={"token": token, "new_password": "again-pass"}).status_code == 403
    login = client.post(f"{API}/auth/login", json={"email": "ana@carrierdesk.io", "password": "reset-pass"})
    assert login.status_code == 200


def test_plan_catalog_flow(client, advisor_auth, customer_auth, plan_id):
    response = client.get(f"{API}/plans", headers=customer_auth["headers"])
    assert response.status_code == 200
    plans = response.json()
    assert [p["name"] for p in plans] == ["5GB-Basic"]
    assert plans[0]["minutes_allowance"] == "UNLIMITED"
    assert plans[0]["price"] == 10.0

    assert len(client.get(f"{API}/plans?q=basic", headers=customer_auth["headers"]).json()) == 1
    assert client.get(f"{API}/plans?segment=premium", headers=customer_auth["headers"]).json() == []

    response = client.patch(f"{API}/plans/{plan_id}", json={"price": 12.5}, headers=advisor_auth["headers"])
    assert response.status_code == 200
    assert response.json()["price"] == 12.5

    response = client.delete(f"{API}/plans/{plan_id}", headers=advisor_auth["headers"])
    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert client.get(f"{API}/plans", headers=customer_auth["headers"]).json() == []
    assert len(client.get(f"{API}/plans/mine", headers=advisor_auth["headers"]).json()) == 1


def test_plan_writes_are_advisor_only(client, customer_auth, plan_id):
    assert client.post(f"{API}/plans", json=PLAN_BODY, headers=customer_auth["headers"]).status_code == 403
    assert client.delete(f"{API}/plans/{plan_id}", headers=customer_auth["headers"]).status_code == 403


def test_invalid_plan_is_422(client, advisor_auth):
    response = client.post(f"{API}/plans", json={**PLAN_BODY, "price": -1}, headers=advisor_auth["headers"])
    assert response.status_code == 422


def test_contract_flow_and_conflicts(client, advisor_auth, customer_auth, plan_id):
    response = client.post(f"{API}/contracts", json={"plan_id": plan_id}, headers=customer_auth["headers"])
    assert response.status_code == 201
    contract = response.json()
    assert contract["status"] == "pending"
    assert contract["plan"]["name"] == "5GB-Basic"

    second = client.post(f"{API}/contracts", json={"plan_id": plan_id}, headers=customer_auth["headers"])
    assert second.status_code == 409

    pending = client.get(f"{API}/contracts/pending", headers=advisor_auth["headers"]).json()
    assert [c["id"] for c in pending] == [contract["id"]]

    no_reason = client.post(
        f"{API}/contracts/{contract['id']}/reject", json={"advisor_notes": " "}, headers=advisor_auth["headers"]
    )
    assert no_reason.status_code == 422

    rejected = client.post(
        f"{API}/contracts/{contract['id']}/reject",
        json={"advisor_notes": "not eligible"},
        headers=advisor_auth["headers"],
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"

    approve = client.post(f"{API}/contracts/{contract['id']}/approve", json={}, headers=advisor_auth["headers"])
    assert approve.status_code == 409

    mine = client.get(f"{API}/contracts", headers=customer_auth["headers"]).json()
    assert [c["status"] for c in mine] == ["rejected"]

    stats = client.get(f"{API}/contracts/stats", headers=advisor_auth["headers"]).json()
    assert stats == {"total": 1, "approved": 0, "rejected": 1, "expired": 0, "pending": 0}


def test_contract_not_found_and_forbidden(client, advisor_auth, customer_auth, approved_contract_id):
    assert client.get(f"{API}/contracts/9999", headers=customer_auth["headers"]).status_code == 404
    assert client.post(f"{API}/contracts/9999/approve", json={}, headers=advisor_auth["headers"]).status_code == 404
    assert client.get(f"{API}/contracts/pending", headers=customer_auth["headers"]).status_code == 403

    outsider = _sign_up_and_login(client, "luis@carrierdesk.io", "customer")
    response = client.get(f"{API}/contracts/{approved_contract_id}", headers=outsider["headers"])
    assert response.status_code == 403


def test_chat_over_http(client, advisor_auth, customer_auth, approved_contract_id):
    url = f"{API}/contracts/{approved_contract_id}/messages"

    first = client.post(url, json={"content": "Hello!"}, headers=customer_auth["headers"])
    second = client.post(url, json={"content": "Welcome aboard."}, headers=advisor_auth["headers"])
    assert first.status_code == 201 and second.status_code == 201
    assert first.json()["author"]["email"] == "ana@carrierdesk.io"

    history = client.get(url, headers=advisor_auth["headers"]).json()
    assert [m["content"] for m in history] == ["Hello!", "Welcome aboard."]
    assert [m["content"] for m in client.get(f"{url}?limit=1", headers=advisor_auth["headers"]).json()] == [
        "Welcome aboard."
    ]

    empty = client.post(url, json={"content": "  "}, headers=customer_auth["headers"])
    assert empty.status_code == 422

    message_id = first.json()["id"]
    assert client.delete(f"{API}/messages/{message_id}", headers=advisor_auth["headers"]).status_code == 403
    assert client.delete(f"{API}/messages/{message_id}", headers=customer_auth["headers"]).status_code == 204
    assert len(client.get(url, headers=customer_auth["headers"]).json()) == 1


def test_chat_closed_before_approval(client, customer_auth, plan_id):
    contract = client.post(f"{API}/contracts", json={"plan_id": plan_id}, headers=customer_auth["headers"]).json()
    response = client.post(
        f"{API}/contracts/{contract['id']}/messages", json={"content": "hi"}, headers=customer_auth["headers"]
    )
    assert response.status_code == 409


def test_websocket_receives_messages_and_typing(client, advisor_auth, customer_auth, approved_contract_id):
    ws_url = f"{API}/contracts/{approved_contract_id}/ws?token={advisor_auth['token']}"

    with client.websocket_connect(ws_url) as websocket:
        response = client.post(
            f"{API}/contracts/{approved_contract_id}/typing",
            json={"display_name": "Ana"},
            headers=customer_auth["headers"],
        )
        assert response.status_code == 202
        frame = websocket.receive_json()
        assert frame["type"] == "typing"
        assert frame["data"]["author_name"] == "Ana"

        client.post(
            f"{API}/contracts/{approved_contract_id}/messages",
            json={"content": "Is my plan active?"},
            headers=customer_auth["headers"],
        )
        frame = websocket.receive_json()
        assert frame["type"] == "message"
        assert frame["data"]["content"] == "Is my plan active?"
        assert frame["data"]["author"]["email"] == "ana@carrierdesk.io"
        assert frame["data"]["is_fallback"] is False

        websocket.send_json({"type": "message", "content": "Yes, since this morning."})
        frame = websocket.receive_json()
        assert frame["type"] == "message"
        assert frame["data"]["author_id"] == advisor_auth["id"]


def test_websocket_rejects_non_text_content(client, advisor_auth, approved_contract_id):
    ws_url = f"{API}/contracts/{approved_contract_id}/ws?token={advisor_auth['token']}"

    with client.websocket_connect(ws_url) as websocket:
        websocket.send_json({"type": "message", "content": {"text": "hi"}})
        frame = websocket.receive_json()
        assert frame == {
            "type": "error",
            "data": {"kind": "validation", "detail": "Message content must be text"},
        }

    history = client.get(
        f"{API}/contracts/{approved_contract_id}/messages", headers=advisor_auth["headers"]
    ).json()
    assert history == []


def test_websocket_refuses_outsiders(client, approved_contract_id):
    outsider = _sign_up_and_login(client, "luis@carrierdesk.io", "customer")
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(
            f"{API}/contracts/{approved_contract_id}/ws?token={outsider['token']}"
        ) as websocket:
            websocket.receive_json()
