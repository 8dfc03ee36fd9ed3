from tests.fakes import MODERATOR_ID

SPOT = {"lat": 37.5665, "lng": 126.9785}


def write_trace(api, content="한강 바람이 좋아요", tone_tag="comfort"):
    return api.post("/traces", json={"content": content, "tone_tag": tone_tag, **SPOT})


def test_write_then_quota_used(api):
    created = write_trace(api)
    assert created.status_code == 201
    body = created.json()
    assert body["is_mine"] is True
    assert "author_id" not in body

    denied = write_trace(api, content="second")
    assert denied.status_code == 403
    assert denied.json()["error"] == "free_used"

    permission = api.get("/traces/permission").json()
    assert permission["write_permission"] == "FREE_USED"


def test_mock_payment_unlocks_writing(api):
    write_trace(api)

    paid = api.post("/traces/payment/mock", json={"tier": "threeDay"})
    assert paid.status_code == 200
    assert paid.json()["write_permission"] == "PAID_AVAILABLE"

    assert write_trace(api, content="paid").status_code == 201

    cooling = write_trace(api, content="too soon")
    assert cooling.status_code == 403
    assert cooling.json()["error"] == "cooldown"
    assert "next_available_at" in cooling.json()


def test_list_like_and_report(api, login):
    trace_id = write_trace(api).json()["id"]

    login("bob")
    listing = api.get("/traces", params=SPOT).json()
    assert listing["count"] == 1
    assert listing["grid_status"] == "HAS_MESSAGES"
    assert listing["traces"][0]["is_mine"] is False

    liked = api.post(f"/traces/{trace_id}/like").json()
    assert liked == {"like_status": "LIKED", "like_count": 1}
    assert api.get(f"/traces/{trace_id}").json()["is_liked"] is True

    unliked = api.delete(f"/traces/{trace_id}/like").json()
    assert unliked == {"like_status": "NOT_LIKED", "like_count": 0}

    reported = api.post(f"/traces/{trace_id}/report", json={"reason": "spam"})
    assert reported.json() == {"report_status": "REPORTED"}

    again = api.post(f"/traces/{trace_id}/report", json={"reason": "spam"})
    assert again.status_code == 409
    assert again.json()["error"] == "already_reported"


def test_invalid_tone_is_bad_request(api):
    response = write_trace(api, tone_tag="sleepy")

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_tone_tag"


def test_author_delete(api, login):
    trace_id = write_trace(api).json()["id"]

    login("bob")
    assert api.delete(f"/traces/{trace_id}").status_code == 403

    login("alice")
    assert api.delete(f"/traces/{trace_id}").status_code == 204
    assert api.get(f"/traces/{trace_id}").status_code == 404


def test_moderator_removal(api, login):
    trace_id = write_trace(api).json()["id"]

    forbidden = api.post(f"/admin/traces/{trace_id}/remove", json={"reason": "abuse"})
    assert forbidden.status_code == 403

    login(MODERATOR_ID)
    removed = api.post(f"/admin/traces/{trace_id}/remove", json={"reason": "abuse"})
    assert removed.status_code == 200
    assert removed.json() == {"trace_id": trace_id, "status": "REMOVED"}
