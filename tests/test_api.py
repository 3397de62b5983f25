"""
API tests through the FastAPI TestClient with Supabase, LemonSqueezy and the
upload tracker replaced by fakes.
"""
import json
from datetime import timedelta

import pytest
from starlette.datastructures import UploadFile as StarletteUploadFile

from app.core.config import settings
from app.core.exceptions import ProviderError
from app.core.plans import USER_PLANS
from app.core.security import compute_signature
from app.services.upload_tracker import COMPLETED, FAILED, UPLOADING
from conftest import days_ago

MB = 1024 * 1024


# --- Auth ---

def test_user_requires_token(client):
    response = client.get("/api/user")

    assert response.status_code == 401
    assert response.json() == {"error": "Missing or invalid authorization header"}


def test_user_rejects_unknown_token(client):
    response = client.get("/api/user", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


def test_first_request_creates_free_user(client, fake_supabase, auth_headers):
    response = client.get("/api/user", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "u1"
    assert body["email"] == "u1@example.com"
    assert body["name"] == "User One"
    assert body["plan"] == "free"
    assert body["conversionCount"] == 0
    assert fake_supabase.user_row("u1") is not None


def test_stale_counter_is_reset_on_read(client, fake_supabase, auth_headers):
    fake_supabase.add_user("u1", conversion_count=10, last_reset=days_ago(1))

    response = client.get("/api/user", headers=auth_headers)

    assert response.json()["conversionCount"] == 0
    assert fake_supabase.user_row("u1")["conversion_count"] == 0


def test_store_unreachable_returns_generic_500(client, fake_supabase, auth_headers):
    fake_supabase.unreachable = True

    response = client.get("/api/user", headers=auth_headers)

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


# --- Usage and quota ---

def test_usage(client, fake_supabase, auth_headers):
    fake_supabase.add_user("u1", conversion_count=4)

    body = client.get("/api/usage", headers=auth_headers).json()

    assert body["plan"] == "free"
    assert body["limit"] == 10
    assert body["remaining"] == 6
    assert body["usagePercentage"] == 40.0
    assert body["canConvertMore"] is True


def test_check_batch_limit_allows_batch(client, fake_supabase, auth_headers):
    fake_supabase.add_user("u1", conversion_count=2)

    response = client.post("/api/check-batch-limit", headers=auth_headers, json={
        "fileCount": 3,
        "files": [{"size": MB, "type": "image/png"}] * 3,
    })

    assert response.status_code == 200
    assert response.json() == {"allowed": True, "remaining": 8}


def test_check_batch_limit_at_plan_file_limit(client, auth_headers):
    ok = client.post("/api/check-batch-limit", headers=auth_headers, json={"fileCount": 5})
    too_many = client.post("/api/check-batch-limit", headers=auth_headers, json={"fileCount": 6})

    assert ok.status_code == 200
    assert too_many.status_code == 400
    assert too_many.json() == {"error": "Maximum 5 files allowed for Free plan"}


def test_check_batch_limit_rejects_oversized_file(client, auth_headers):
    response = client.post("/api/check-batch-limit", headers=auth_headers, json={
        "fileCount": 1,
        "files": [{"size": 200 * MB, "type": "video/mp4"}],
    })

    assert response.status_code == 400
    assert response.json() == {"error": "File size exceeds 100 MB limit"}


def test_check_batch_limit_rejects_when_quota_short(client, fake_supabase, auth_headers):
    fake_supabase.add_user("u1", conversion_count=8)

    response = client.post("/api/check-batch-limit", headers=auth_headers, json={"fileCount": 3})

    assert response.status_code == 400
    assert "You have 2 conversions left today" in response.json()["error"]


def test_check_batch_limit_rejects_bad_body(client, auth_headers):
    response = client.post("/api/check-batch-limit", headers=auth_headers, json={"fileCount": 0})

    assert response.status_code == 400
    assert "error" in response.json()


def test_record_conversion_increments(client, fake_supabase, auth_headers):
    fake_supabase.add_user("u1", conversion_count=3)

    response = client.post("/api/conversions", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"conversionCount": 4, "remaining": 6}
    assert fake_supabase.user_row("u1")["conversion_count"] == 4


def test_record_conversion_blocked_at_daily_limit(client, fake_supabase, auth_headers):
    fake_supabase.add_user("u1", conversion_count=10)

    response = client.post("/api/conversions", headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {
        "error": "Daily conversion limit reached. Upgrade to premium for more conversions."
    }
    assert fake_supabase.user_row("u1")["conversion_count"] == 10


def test_record_conversion_after_rollover(client, fake_supabase, auth_headers):
    fake_supabase.add_user("u1", conversion_count=10, last_reset=days_ago(1))

    response = client.post("/api/conversions", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["conversionCount"] == 1


# --- Plans and health ---

def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_plans_catalogue(client):
    plans = client.get("/api/plans").json()["plans"]

    assert set(plans) == {"free", "premium"}
    assert plans["free"]["displayName"] == "Free"
    assert plans["premium"]["quotas"]["conversions_per_day"] == 100
    assert plans["premium"]["price"] == {"monthly": 5.99, "yearly": 59.99}


# --- Billing ---

def test_subscription_without_row_reports_plan_only(client, auth_headers):
    response = client.get("/api/subscription", headers=auth_headers)

    assert response.json() == {"subscription": {"plan": "free"}}


def test_subscription_with_row(client, fake_supabase, auth_headers):
    fake_supabase.add_user("u1", plan="premium")
    fake_supabase.tables["subscriptions"].append({
        "id": "row-1", "user_id": "u1", "lemonsqueezy_subscription_id": "42",
        "status": "active", "plan_type": "premium", "cancel_at_period_end": False,
        "current_period_end": "2024-06-01T00:00:00+00:00", "updated_at": "2024-05-01T00:00:00+00:00",
    })

    subscription = client.get("/api/subscription", headers=auth_headers).json()["subscription"]

    assert subscription["plan"] == "premium"
    assert subscription["status"] == "active"
    assert subscription["cancelAtPeriodEnd"] is False
    assert subscription["currentPeriodEnd"].startswith("2024-06-01T00:00:00")


@pytest.fixture
def variants(monkeypatch):
    monkeypatch.setattr(settings, "LEMON_SQUEEZY_MONTHLY_VARIANT_ID", "1001")
    monkeypatch.setattr(settings, "LEMON_SQUEEZY_YEARLY_VARIANT_ID", "1002")


def test_checkout(client, auth_headers, fake_lemonsqueezy, variants):
    response = client.post("/api/checkout", headers=auth_headers, json={"plan": "yearly"})

    assert response.status_code == 200
    assert response.json() == {
        "checkoutUrl": "https://convertor.lemonsqueezy.com/checkout/chk_123",
        "checkoutId": "chk_123",
    }
    [call] = fake_lemonsqueezy.calls
    assert call["variant_id"] == "1002"
    assert call["user_id"] == "u1"
    assert call["redirect_url"].endswith("/#upload")


def test_checkout_rejects_unknown_plan(client, auth_headers, fake_lemonsqueezy, variants):
    response = client.post("/api/checkout", headers=auth_headers, json={"plan": "weekly"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid plan. Must be 'monthly' or 'yearly'"}
    assert fake_lemonsqueezy.calls == []


def test_checkout_without_variant_configured(client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "LEMON_SQUEEZY_MONTHLY_VARIANT_ID", None)

    response = client.post("/api/checkout", headers=auth_headers, json={"plan": "monthly"})

    assert response.status_code == 500
    assert response.json() == {"error": "Checkout is not configured for this plan"}


def test_checkout_provider_failure(client, auth_headers, fake_lemonsqueezy, variants):
    fake_lemonsqueezy.error = ProviderError("Failed to create checkout")

    response = client.post("/api/checkout", headers=auth_headers, json={"plan": "monthly"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create checkout"}


def test_cancel_not_implemented(client, auth_headers):
    response = client.post("/api/subscription/cancel", headers=auth_headers)

    assert response.status_code == 501


# --- Webhooks ---

def subscription_payload(event_name="subscription_created", status="active", user_id="u1"):
    meta = {"event_name": event_name}
    if user_id:
        meta["custom_data"] = {"user_id": user_id}
    return json.dumps({
        "meta": meta,
        "data": {
            "type": "subscriptions",
            "id": "42",
            "attributes": {
                "status": status,
                "variant_id": 1001,
                "renews_at": "2024-06-01T00:00:00.000000Z",
                "created_at": "2024-05-01T00:00:00.000000Z",
                "updated_at": "2024-05-01T00:00:05.000000Z",
            },
        },
    }).encode()


def post_webhook(client, body, signature):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["X-Signature"] = signature
    return client.post("/api/webhooks/payment", content=body, headers=headers)


def test_webhook_missing_signature(client, webhook_secret):
    response = post_webhook(client, subscription_payload(), None)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing signature"}


def test_webhook_without_configured_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "LEMON_SQUEEZY_WEBHOOK_SECRET", None)

    response = post_webhook(client, subscription_payload(), "abc")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


def test_webhook_wrong_signature_changes_nothing(client, fake_supabase, webhook_secret):
    fake_supabase.add_user("u1")
    body = subscription_payload()

    response = post_webhook(client, body, compute_signature(body, "some-other-secret"))

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}
    assert fake_supabase.user_row("u1")["plan"] == "free"
    assert fake_supabase.rows("subscriptions") == []


def test_webhook_valid_signature_upgrades_user(client, fake_supabase, webhook_secret):
    fake_supabase.add_user("u1")
    body = subscription_payload()

    response = post_webhook(client, body, compute_signature(body, webhook_secret))

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert fake_supabase.user_row("u1")["plan"] == "premium"
    assert fake_supabase.rows("subscriptions")[0]["status"] == "active"


def test_webhook_without_user_id_is_acknowledged(client, fake_supabase, webhook_secret):
    body = subscription_payload(user_id=None)

    response = post_webhook(client, body, compute_signature(body, webhook_secret))

    assert response.status_code == 200
    assert fake_supabase.rows("subscriptions") == []


def test_webhook_store_failure_is_still_acknowledged(client, fake_supabase, webhook_secret):
    fake_supabase.unreachable = True
    body = subscription_payload()

    response = post_webhook(client, body, compute_signature(body, webhook_secret))

    assert response.status_code == 200
    assert response.json() == {"success": True}


def test_webhook_malformed_body_is_still_acknowledged(client, webhook_secret):
    body = b"not json"

    response = post_webhook(client, body, compute_signature(body, webhook_secret))

    assert response.status_code == 200


# --- Uploads ---

def test_upload_status_unknown_id(client, auth_headers):
    response = client.get("/api/upload-status/unknown-id", headers=auth_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Upload not found"}


def test_upload_status_without_id(client, auth_headers):
    response = client.get("/api/upload-status/", headers=auth_headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Upload ID is required"}


def test_upload_status_requires_auth(client, tracker):
    tracker.create("up-1", "a.png")

    assert client.get("/api/upload-status/up-1").status_code == 401


def test_upload_status_shapes(client, tracker, auth_headers):
    tracker.create("pending", "a.png")
    tracker.create("working", "b.png")
    tracker.set_status("working", UPLOADING)
    tracker.create("done", "c.png")
    tracker.set_status("done", COMPLETED)
    tracker.create("broken", "d.png")
    tracker.set_status("broken", FAILED, error="Failed to store uploaded file")

    pending = client.get("/api/upload-status/pending", headers=auth_headers).json()
    assert pending["uploadId"] == "pending"
    assert pending["status"] == "pending"
    assert pending["fileName"] == "a.png"
    assert "createdAt" in pending
    assert "error" not in pending and "message" not in pending

    assert client.get("/api/upload-status/working", headers=auth_headers).json()["status"] == "uploading"

    done = client.get("/api/upload-status/done", headers=auth_headers).json()
    assert done["message"] == "Upload completed successfully"
    assert "error" not in done

    broken = client.get("/api/upload-status/broken", headers=auth_headers).json()
    assert broken["status"] == "failed"
    assert broken["error"] == "Failed to store uploaded file"


def test_queue_upload_end_to_end(client, fake_supabase, tracker, auth_headers):
    response = client.post(
        "/api/uploads",
        headers=auth_headers,
        files={"file": ("holiday.png", b"\x89PNG...", "image/png")},
    )

    assert response.status_code == 202
    queued = response.json()
    assert queued["status"] == "pending"
    assert queued["fileName"] == "holiday.png"

    # background task has run by the time the TestClient returns
    status = client.get(f"/api/upload-status/{queued['uploadId']}", headers=auth_headers).json()
    assert status["status"] == "completed"
    [(bucket, path)] = fake_supabase.storage.objects
    assert bucket == settings.SUPABASE_UPLOAD_BUCKET_NAME
    assert path == f"u1/{queued['uploadId']}-holiday.png"


def test_queue_upload_storage_failure(client, fake_supabase, auth_headers):
    fake_supabase.storage.fail = True

    queued = client.post(
        "/api/uploads",
        headers=auth_headers,
        files={"file": ("holiday.png", b"data", "image/png")},
    ).json()

    status = client.get(f"/api/upload-status/{queued['uploadId']}", headers=auth_headers).json()
    assert status["status"] == "failed"
    assert status["error"] == "Failed to store uploaded file"


def test_queue_upload_rejects_unsupported_type(client, tracker, auth_headers):
    response = client.post(
        "/api/uploads",
        headers=auth_headers,
        files={"file": ("report.pdf", b"%PDF", "application/pdf")},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Document not supported for Free plan"}
    assert len(tracker) == 0


def test_chunked_upload_not_implemented(client, auth_headers):
    assert client.post("/api/upload", headers=auth_headers).status_code == 501


def test_record_conversion_never_exceeds_limit_under_concurrency(client, fake_supabase, auth_headers):
    row = fake_supabase.add_user("u1", conversion_count=9)

    def concurrent_conversion():
        fake_supabase.hooks.pop(("users", "update"))
        row["conversion_count"] += 1

    fake_supabase.hooks[("users", "update")] = concurrent_conversion

    response = client.post("/api/conversions", headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Daily conversion limit reached")
    assert fake_supabase.user_row("u1")["conversion_count"] == 10


def test_check_batch_limit_counts_listed_files(client, auth_headers):
    response = client.post("/api/check-batch-limit", headers=auth_headers, json={
        "fileCount": 1,
        "files": [{"size": MB, "type": "image/png"}] * 6,
    })

    assert response.status_code == 400
    assert response.json() == {"error": "Maximum 5 files allowed for Free plan"}


def test_webhook_non_ascii_signature_is_a_mismatch(client, fake_supabase, webhook_secret):
    fake_supabase.add_user("u1")

    response = client.post(
        "/api/webhooks/payment",
        content=subscription_payload(),
        headers={"Content-Type": "application/json", "X-Signature": ("é" * 64).encode("latin-1")},
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}
    assert fake_supabase.user_row("u1")["plan"] == "free"


def test_oversized_upload_is_rejected_before_reading(client, tracker, auth_headers, monkeypatch):
    monkeypatch.setitem(USER_PLANS, "free", USER_PLANS["free"].model_copy(update={"max_file_size_bytes": 10}))

    async def unexpected_read(self, size=-1):
        raise AssertionError("oversized upload was read")

    monkeypatch.setattr(StarletteUploadFile, "read", unexpected_read)

    response = client.post(
        "/api/uploads",
        headers=auth_headers,
        files={"file": ("big.png", b"x" * 11, "image/png")},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "File size exceeds 10 Bytes limit"}
    assert len(tracker) == 0


def test_completed_upload_is_listed_and_downloadable(client, fake_supabase, auth_headers):
    queued = client.post(
        "/api/uploads",
        headers=auth_headers,
        files={"file": ("holiday.png", b"png-bytes", "image/png")},
    ).json()

    body = client.get("/api/user-files", headers=auth_headers).json()

    assert body["count"] == 1
    [listed] = body["files"]
    assert listed["fileName"] == "holiday.png"
    assert listed["fileSize"] == len(b"png-bytes")
    assert listed["status"] == "ready"
    assert queued["uploadId"] in listed["downloadUrl"]
    assert 0 < listed["timeRemaining"] <= 24 * 60 * 60 * 1000

    download = client.get(f"/api/download/{listed['id']}", headers=auth_headers, follow_redirects=False)
    assert download.status_code == 307
    assert download.headers["location"].startswith("https://storage.example/")


def test_user_files_are_private(client, fake_supabase, auth_headers):
    fake_supabase.add_user_file("someone-else")

    assert client.get("/api/user-files", headers=auth_headers).json() == {"files": [], "count": 0}


def test_download_unknown_or_expired_file(client, fake_supabase, auth_headers):
    expired = fake_supabase.add_user_file("u1", expires_in=timedelta(minutes=-1))

    missing = client.get("/api/download/nope", headers=auth_headers, follow_redirects=False)
    stale = client.get(f"/api/download/{expired['id']}", headers=auth_headers, follow_redirects=False)

    assert missing.status_code == 404
    assert missing.json() == {"error": "File not found"}
    assert stale.status_code == 404
    assert stale.json() == {"error": "File has expired"}


def test_delete_user_file_removes_row_and_object(client, fake_supabase, auth_headers):
    row = fake_supabase.add_user_file("u1")

    response = client.delete(f"/api/user-files/{row['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"message": "File deleted successfully"}
    assert fake_supabase.rows("user_files") == []
    assert fake_supabase.storage.objects == {}
    assert client.delete(f"/api/user-files/{row['id']}", headers=auth_headers).status_code == 404


def test_mark_file_downloaded(client, fake_supabase, auth_headers):
    row = fake_supabase.add_user_file("u1")

    response = client.post("/api/user-files/mark-downloaded", headers=auth_headers, json={"fileId": row["id"]})

    assert response.status_code == 200
    assert fake_supabase.rows("user_files")[0]["status"] == "downloaded"
    assert client.post(
        "/api/user-files/mark-downloaded", headers=auth_headers, json={"fileId": "nope"}
    ).status_code == 404
