"""End-to-end tests of the Flask JSON API."""

from dataclasses import replace
from types import SimpleNamespace

import pytest

from inphrone.database import close_db_pool, init_db_pool, run_migrations
from inphrone.database.repositories import ProfileRepository
from inphrone.database.your_turn_repository import YourTurnRepository
from inphrone.services.async_runner import run_coroutine_sync, start_background_loop, stop_background_loop
from inphrone.services.container import build_services
from inphrone.services.realtime import ChangeFeed
from inphrone.web import create_app
from inphrone.web.auth import issue_token

from conftest import SLOT_TIMES, TODAY, FakeClock, FakeEmailSession


async def _init_database(config):
    pool = await init_db_pool(config.database_path, config.db_pool_size, config.db_busy_timeout)
    await run_migrations(pool)


@pytest.fixture
def web(test_config):
    """Flask app with its services on a background event loop."""
    config = replace(test_config, environment="development")
    loop, thread = start_background_loop()
    run_coroutine_sync(_init_database(config))
    clock = FakeClock()
    services = build_services(config, feed=ChangeFeed(), clock=clock, http_session=FakeEmailSession())
    app = create_app(config, services=services, testing=True)

    def login_as(user_id, user_type="audience", onboarded=True):
        run_coroutine_sync(
            ProfileRepository.upsert(
                user_id,
                f"{user_id}@example.com",
                full_name=user_id.title(),
                user_type=user_type,
                onboarding_completed=onboarded,
            )
        )
        return {"Authorization": f"Bearer {issue_token(config.secret_key, user_id)}"}

    yield SimpleNamespace(app=app, client=app.test_client(), clock=clock, services=services, login_as=login_as)

    run_coroutine_sync(close_db_pool())
    stop_background_loop(loop, thread)


def _slots():
    run_coroutine_sync(YourTurnRepository.ensure_slots(TODAY, SLOT_TIMES))
    return {s.slot_time: s.id for s in run_coroutine_sync(YourTurnRepository.get_slots_for_date(TODAY))}


def test_requires_bearer_token(web):
    """Test that API calls without a token are sent to sign in."""
    response = web.client.get("/api/your-turn/today")

    assert response.status_code == 401
    assert response.get_json()["redirect"] == "/auth"

    response = web.client.get("/api/your-turn/today", headers={"Authorization": "Bearer forged"})
    assert response.status_code == 401


def test_onboarding_required(web):
    """Test that users without a finished profile go to onboarding."""
    headers = web.login_as("newbie", onboarded=False)

    response = web.client.get("/api/your-turn/today", headers=headers)

    assert response.status_code == 403
    assert response.get_json()["redirect"] == "/onboarding"


def test_your_turn_flow(web):
    """Test claim, submit and vote over HTTP."""
    alice = web.login_as("alice")
    bob = web.login_as("bob")
    slot_id = _slots()["09:00"]

    early = web.client.post(f"/api/your-turn/slots/{slot_id}/claim", headers=alice)
    assert early.status_code == 409
    assert early.get_json()["outcome"] == "not_open"

    web.clock.set(9, 0, 2)
    won = web.client.post(f"/api/your-turn/slots/{slot_id}/claim", headers=alice)
    lost = web.client.post(f"/api/your-turn/slots/{slot_id}/claim", headers=bob)
    assert won.status_code == 200
    assert won.get_json()["slot"]["winner_id"] == "alice"
    assert lost.status_code == 409
    assert lost.get_json()["outcome"] == "already_taken"

    created = web.client.post(
        f"/api/your-turn/slots/{slot_id}/question",
        json={"question_text": "Theatre or streaming?", "options": ["Theatre", "Streaming"]},
        headers=alice,
    )
    assert created.status_code == 201
    question_id = created.get_json()["question"]["id"]

    voted = web.client.post(f"/api/your-turn/questions/{question_id}/vote", json={"option_id": "opt2"}, headers=bob)
    again = web.client.post(f"/api/your-turn/questions/{question_id}/vote", json={"option_id": "opt1"}, headers=bob)
    assert voted.status_code == 200
    assert voted.get_json()["question"]["total_votes"] == 1
    assert again.get_json()["outcome"] == "already_voted"

    board = web.client.get("/api/your-turn/today", headers=bob).get_json()
    assert board["questions"][0]["my_vote"] == "opt2"
    assert board["slots"][0]["has_attempted"] is True


def test_invalid_question_is_bad_request(web):
    """Test that validation errors map to 400."""
    alice = web.login_as("alice")
    slot_id = _slots()["09:00"]
    web.clock.set(9, 0, 2)
    web.client.post(f"/api/your-turn/slots/{slot_id}/claim", headers=alice)

    response = web.client.post(
        f"/api/your-turn/slots/{slot_id}/question",
        json={"question_text": "Theatre or streaming?", "options": ["Only"]},
        headers=alice,
    )

    assert response.status_code == 400
    assert "options" in response.get_json()["error"]


def test_non_text_question_fields_are_bad_request(web):
    """Test that numeric options or question text map to 400, not a server error."""
    alice = web.login_as("alice")
    slot_id = _slots()["09:00"]
    web.clock.set(9, 0, 2)
    web.client.post(f"/api/your-turn/slots/{slot_id}/claim", headers=alice)
    url = f"/api/your-turn/slots/{slot_id}/question"

    numeric_options = web.client.post(
        url, json={"question_text": "Best movie of 2025?", "options": [1, 2]}, headers=alice
    )
    numeric_text = web.client.post(url, json={"question_text": 42, "options": ["Yes", "No"]}, headers=alice)

    assert numeric_options.status_code == 400
    assert numeric_options.get_json()["error"] == "Options must be text labels"
    assert numeric_text.status_code == 400
    assert numeric_text.get_json()["error"] == "Question must be text"


def test_unknown_slot_is_not_found(web):
    """Test 404 with a redirect for a missing slot."""
    response = web.client.get("/api/your-turn/slots/999", headers=web.login_as("alice"))

    assert response.status_code == 404
    assert response.get_json()["redirect"] == "/your-turn"


def test_next_slot_is_public(web):
    """Test the countdown endpoint without authentication."""
    web.clock.set(15, 0)

    response = web.client.get("/api/your-turn/next")

    assert response.get_json()["label"] == "7:00 PM"


def test_inphrosync_endpoints(web):
    """Test answering and reading poll results and streaks."""
    alice = web.login_as("alice")

    first = web.client.post("/api/inphrosync/responses", json={"question_type": "device_used", "option": "tv"}, headers=alice)
    second = web.client.post("/api/inphrosync/responses", json={"question_type": "device_used", "option": "tv"}, headers=alice)
    results = web.client.get("/api/inphrosync/results", headers=alice).get_json()
    progress = web.client.get("/api/inphrosync/progress", headers=alice).get_json()
    streak = web.client.get("/api/streaks/me", headers=alice).get_json()

    assert first.status_code == 201
    assert first.get_json()["streak_days"] == 1
    assert second.status_code == 409
    assert results["device_used"]["total"] == 1
    assert progress["answered"] == 1
    assert streak["next_milestone"]["weeks"] == 4
    assert streak["streak"]["inphrosync_streak_days"] == 1


def test_industry_user_cannot_answer_polls(web):
    """Test that InphroSync is closed to industry accounts."""
    studio = web.login_as("studio1", user_type="studio")

    response = web.client.post("/api/inphrosync/responses", json={"question_type": "device_used", "option": "tv"}, headers=studio)

    assert response.status_code == 403
    assert web.client.get("/api/streaks/me", headers=studio).get_json() == {"streak": None}


def test_opinions_and_coupons(web):
    """Test posting, liking and claiming rewards."""
    alice = web.login_as("alice")
    bob = web.login_as("bob")

    categories = web.client.get("/api/opinions/categories").get_json()
    created = web.client.post(
        "/api/opinions",
        json={"category_id": categories[0]["id"], "title": "More thrillers", "content": "We need more slow-burn thrillers."},
        headers=alice,
    )
    opinion_id = created.get_json()["id"]
    liked = web.client.post(f"/api/opinions/{opinion_id}/like", headers=bob)
    own = web.client.post(f"/api/opinions/{opinion_id}/like", headers=alice)

    assert created.status_code == 201
    assert liked.status_code == 200
    assert own.status_code == 400
    listing = web.client.get("/api/opinions?sort=popular", headers=bob).get_json()
    assert listing[0]["likes_count"] == 1

    coupon = run_coroutine_sync(web.services.coupons.create_coupon("admin", "Movie night", "CineMax", "CINE-1", 1))
    claimed = web.client.post(f"/api/coupons/{coupon.id}/claim", headers=alice)
    sold_out = web.client.post(f"/api/coupons/{coupon.id}/claim", headers=bob)
    mine = web.client.get("/api/coupons/mine", headers=alice).get_json()

    assert claimed.status_code == 200
    assert sold_out.get_json()["outcome"] == "sold_out"
    assert mine["coupons"][0]["code"] == "CINE-1"


def test_push_endpoints(web):
    """Test push key, subscription and prompt decisions."""
    alice = web.login_as("alice")
    session = {**alice, "X-Session-Id": "tab-1"}

    assert web.client.get("/api/push/vapid-key").get_json() == {"publicKey": "BTestVapidKey"}
    assert web.client.get("/api/push/prompt", headers=session).get_json() == {"show": True}
    assert web.client.get("/api/push/prompt", headers=session).get_json() == {"show": False}
    assert web.client.get("/api/push/prompt", headers=alice).status_code == 400

    bad = web.client.post("/api/push/subscribe", json={"endpoint": "https://push.example/1", "keys": {}}, headers=alice)
    good = web.client.post(
        "/api/push/subscribe",
        json={"endpoint": "https://push.example/1", "keys": {"p256dh": "key", "auth": "secret"}},
        headers=alice,
    )
    assert bad.status_code == 400
    assert good.status_code == 201

    other_tab = {**alice, "X-Session-Id": "tab-2"}
    assert web.client.get("/api/push/prompt", headers=other_tab).get_json() == {"show": False}


def test_notifications_list_and_read(web):
    """Test reading and marking notifications."""
    alice = web.login_as("alice")
    run_coroutine_sync(web.services.notifications.notify("alice", "Hello", "Welcome aboard", "system"))

    items = web.client.get("/api/notifications?unread=1", headers=alice).get_json()
    read = web.client.post(f"/api/notifications/{items[0]['id']}/read", headers=alice)
    missing = web.client.post("/api/notifications/999/read", headers=alice)

    assert [item["title"] for item in items] == ["Hello"]
    assert read.status_code == 200
    assert missing.status_code == 404
    assert web.client.get("/api/notifications?unread=1", headers=alice).get_json() == []


def test_admin_requires_login(web):
    """Test admin login and logout."""
    assert web.client.get("/admin/stats").status_code == 401

    wrong = web.client.post("/admin/login", json={"username": "admin", "password": "nope"})
    assert wrong.status_code == 401

    ok = web.client.post("/admin/login", json={"username": "admin", "password": "s3cret"})
    assert ok.status_code == 200
    assert web.client.get("/admin/stats").status_code == 200

    web.client.post("/admin/logout")
    assert web.client.get("/admin/stats").status_code == 401


def test_admin_moderation_and_broadcast(web):
    """Test question moderation, broadcast and the audit trail."""
    alice = web.login_as("alice")
    web.login_as("bob")
    slot_id = _slots()["09:00"]
    web.clock.set(9, 0, 2)
    web.client.post(f"/api/your-turn/slots/{slot_id}/claim", headers=alice)
    question_id = web.client.post(
        f"/api/your-turn/slots/{slot_id}/question",
        json={"question_text": "What is your favourite colour?", "options": ["Red", "Blue"]},
        headers=alice,
    ).get_json()["question"]["id"]

    web.client.post("/admin/login", json={"username": "admin", "password": "s3cret"})
    removed = web.client.post(
        f"/admin/your-turn/questions/{question_id}/moderate",
        json={"reason_id": "non_entertainment"},
    )
    repeat = web.client.post(
        f"/admin/your-turn/questions/{question_id}/moderate",
        json={"reason_id": "non_entertainment"},
    )
    broadcast = web.client.post("/admin/broadcast", json={"title": "Maintenance", "message": "Back soon"})
    audit = web.client.get("/admin/audit").get_json()
    questions = web.client.get("/admin/your-turn/questions").get_json()

    assert removed.status_code == 200
    assert repeat.status_code == 409
    assert broadcast.get_json()["notified"] == 2
    assert {entry["action_type"] for entry in audit} == {"MODERATE_QUESTION", "BROADCAST"}
    assert questions[0]["is_deleted"] is True
    assert questions[0]["deletion_reason"] == "Non-entertainment content"


def test_admin_coupon_management(web):
    """Test coupon creation and deactivation from the admin API."""
    web.client.post("/admin/login", json={"username": "admin", "password": "s3cret"})

    created = web.client.post(
        "/admin/coupons",
        json={"title": "Concert", "brand": "LiveCo", "code": "LIVE", "total_quantity": 5,
              "expires_at": "2025-03-01T00:00:00+00:00"},
    )
    coupon_id = created.get_json()["id"]
    deactivated = web.client.post(f"/admin/coupons/{coupon_id}/deactivate")
    invalid = web.client.post("/admin/coupons", json={"title": "X", "brand": "Y", "code": "Z", "total_quantity": "many"})

    assert created.status_code == 201
    assert created.get_json()["remaining"] == 5
    assert deactivated.get_json() == {"deactivated": True}
    assert invalid.status_code == 400


def test_health_metrics_and_counts(web):
    """Test the operational endpoints."""
    web.login_as("alice")
    web.login_as("studio1", user_type="studio")

    health = web.client.get("/health").get_json()
    counts = web.client.get("/api/public/counts").get_json()
    metrics = web.client.get("/metrics")
    missing = web.client.get("/nowhere")

    assert health["status"] == "ok"
    assert health["db_pool_size"] == 10
    assert health["feed_connected"] is True
    assert counts == {"audience": 1, "industry": 1, "opinions": 0}
    assert b"inphrone_http_request_latency_seconds" in metrics.data
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "Not found"
