"""Tests for the /api/otp endpoints."""

from gatekeeper.services import keys
from gatekeeper.services.mailer import ACTIVATION_TEMPLATE, PASSWORD_RESET_TEMPLATE


class TestRequestOtp:
    def test_request_otp_success(self, client, mailer):
        resp = client.post("/api/otp/request", json={"email": "test@example.com", "name": "Test"})

        assert resp.status_code == 200
        assert resp.json() == {"message": "OTP sent to email. Please verify your account."}
        assert mailer.sent[0].template_id == ACTIVATION_TEMPLATE

    def test_password_reset_template(self, client, mailer):
        resp = client.post(
            "/api/otp/request",
            json={"email": "test@example.com", "name": "Test", "purpose": "password-reset"},
        )

        assert resp.status_code == 200
        assert mailer.sent[0].template_id == PASSWORD_RESET_TEMPLATE

    def test_request_otp_invalid_email(self, client):
        resp = client.post("/api/otp/request", json={"email": "not-an-email", "name": "Test"})

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "email" in error["fields"]

    def test_request_otp_missing_name(self, client):
        resp = client.post("/api/otp/request", json={"email": "test@example.com"})
        assert resp.status_code == 400

    def test_cooldown_error_envelope(self, client):
        client.post("/api/otp/request", json={"email": "test@example.com", "name": "Test"})
        resp = client.post("/api/otp/request", json={"email": "test@example.com", "name": "Test"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "OTP_COOLDOWN"
        assert body["error"]["message"] == "Please wait 1 minute before requesting a new OTP!"
        assert body["error"]["retryAfter"] == 60
        assert resp.headers["Retry-After"] == "60"

    def test_case_variant_hits_cooldown(self, client, mailer):
        resp = client.post("/api/otp/request", json={"email": "victim@x.com", "name": "Test"})
        assert resp.status_code == 200

        for email in ("Victim@x.com", "VICTIM@x.com", "victim@X.COM", "ViCtIm@x.com"):
            resp = client.post("/api/otp/request", json={"email": email, "name": "Test"})
            assert resp.status_code == 400
            assert resp.json()["error"]["code"] == "OTP_COOLDOWN"

        assert len(mailer.sent) == 1


class TestVerifyOtp:
    def test_verify_valid_otp(self, client, mailer):
        client.post("/api/otp/request", json={"email": "test@example.com", "name": "Test"})
        code = mailer.last_code("test@example.com")

        resp = client.post("/api/otp/verify", json={"email": "test@example.com", "otp": code})

        assert resp.status_code == 200
        assert resp.json()["message"].startswith("OTP verified")

    async def test_verify_wrong_otp(self, client, store):
        await store.set(keys.otp_key("test@example.com"), "1234", 300)

        resp = client.post("/api/otp/verify", json={"email": "test@example.com", "otp": "9999"})

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "OTP_INCORRECT"
        assert error["attemptsLeft"] == 2
        assert error["message"] == "Incorrect OTP. 2 attempts left."

    def test_verify_without_code(self, client):
        resp = client.post("/api/otp/verify", json={"email": "test@example.com", "otp": "1234"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "OTP_INVALID"

    def test_verify_otp_wrong_length(self, client):
        resp = client.post("/api/otp/verify", json={"email": "test@example.com", "otp": "12345"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_locked_account(self, client, store):
        await store.set(keys.account_lock_key("test@example.com"), "locked", 1800)

        resp = client.post("/api/otp/verify", json={"email": "test@example.com", "otp": "1234"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "ACCOUNT_LOCKED"
        assert resp.json()["error"]["retryAfter"] == 1800


def test_key_builders_fold_case():
    assert keys.cooldown_key("Victim@X.com") == keys.cooldown_key("victim@x.com") == "otp_cooldown:victim@x.com"
    assert keys.account_lock_key(" VICTIM@x.com") == "otp_lock:victim@x.com"
