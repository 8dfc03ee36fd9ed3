from haroo.db.helpers import DatabaseError


def request_mode(api, recipient="bob", days=1):
    return api.post("/modes/request", json={"recipient_id": recipient, "duration_days": days})


def test_request_and_accept_flow(api, login):
    created = request_mode(api)
    assert created.status_code == 201
    mode = created.json()
    assert mode["status"] == "PENDING"
    assert mode["initiator_id"] == "alice"

    login("bob")
    accepted = api.post(f"/modes/{mode['id']}/accept")
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "ACTIVE_PERIOD"

    login("alice")
    current = api.get("/modes/current").json()["mode"]
    assert current["id"] == mode["id"]
    assert current["is_initiator"] is True
    assert current["can_send_today"] is True


def test_current_is_null_without_mode(api):
    response = api.get("/modes/current")

    assert response.status_code == 200
    assert response.json() == {"mode": None}


def test_invalid_duration_is_bad_request(api):
    response = request_mode(api, days=2)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_duration"


def test_busy_initiator_conflict(api):
    request_mode(api)

    response = request_mode(api, recipient="carol")

    assert response.status_code == 409
    assert response.json()["error"] == "self_busy"


def test_only_recipient_may_respond(api, login):
    mode_id = request_mode(api).json()["id"]

    login("carol")
    response = api.post(f"/modes/{mode_id}/reject")

    assert response.status_code == 403
    assert response.json()["error"] == "not_recipient"


def test_unknown_mode_is_not_found(api):
    response = api.post("/modes/6d0e2a7c-0000-4000-8000-000000000000/accept")

    assert response.status_code == 404
    assert response.json()["error"] == "mode_not_found"


def test_block_then_request_is_forbidden(api, login):
    mode_id = request_mode(api).json()["id"]

    login("bob")
    assert api.post(f"/modes/{mode_id}/block").json()["status"] == "BLOCKED"

    login("alice")
    response = request_mode(api)
    assert response.status_code == 403
    assert response.json()["error"] == "blocked"


def test_cancel_by_initiator(api):
    mode_id = request_mode(api).json()["id"]

    response = api.post(f"/modes/{mode_id}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELED"


def test_billing_verify_creates_paid_request(api):
    response = api.post(
        "/billing/verify",
        json={"product_id": "message_mode_3day", "purchase_token": "tok-1", "recipient_id": "bob"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "PENDING"


def test_billing_unknown_product(api):
    response = api.post(
        "/billing/verify",
        json={"product_id": "coins", "purchase_token": "tok-1", "recipient_id": "bob"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "unknown_product"


def test_billing_rejected_purchase(api, verifier):
    verifier.valid = False

    response = api.post(
        "/billing/verify",
        json={"product_id": "message_mode_1day", "purchase_token": "bad", "recipient_id": "bob"},
    )

    assert response.status_code == 402
    assert response.json()["error"] == "payment_rejected"


def test_database_failure_is_service_unavailable(api, container, monkeypatch):
    async def broken(user_id):
        raise DatabaseError("pool exhausted", operation="find_live_for_user")

    monkeypatch.setattr(container.connection_service, "get_current", broken)

    response = api.get("/modes/current")

    assert response.status_code == 503
    assert response.json()["error"] == "database_unavailable"
