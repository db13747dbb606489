import smtplib

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from robocrm import email as email_module
from robocrm import errors
from robocrm.main import handle_crm_error


@pytest.mark.parametrize(
    "exc_class, status_code, code",
    [
        (errors.PreconditionFailed, 409, "precondition_failed"),
        (errors.NotFound, 404, "not_found"),
        (errors.ValidationError, 400, "validation_error"),
        (errors.UpstreamUnavailable, 502, "upstream_unavailable"),
        (errors.VersionConflict, 409, "version_conflict"),
        (errors.RateLimited, 429, "rate_limited"),
        (errors.QuotaExceeded, 429, "quota_exceeded"),
    ],
)
def test_errors_render_as_json(exc_class, status_code, code):
    app = FastAPI()
    app.add_exception_handler(errors.CrmError, handle_crm_error)

    @app.get("/boom")
    def boom():
        raise exc_class("something went wrong")

    response = TestClient(app).get("/boom")
    assert response.status_code == status_code
    assert response.json() == {"error": code, "message": "something went wrong"}


@pytest.mark.parametrize(
    "smtp_code, reply, exc_class",
    [
        (550, b"5.4.5 Daily user sending quota exceeded.", errors.QuotaExceeded),
        (452, b"4.5.3 Your message has too many recipients", errors.QuotaExceeded),
        (421, b"Service not available, try again later", errors.RateLimited),
        (451, b"4.7.28 Unusual rate of unsolicited mail", errors.RateLimited),
        (554, b"5.7.1 Message rejected", errors.UpstreamUnavailable),
    ],
)
def test_smtp_replies_map_onto_taxonomy(smtp_code, reply, exc_class):
    exc = smtplib.SMTPDataError(smtp_code, reply)
    result = email_module.classify_smtp_error(exc, "client@example.com")
    assert type(result) is exc_class
    assert "client@example.com" in result.message


def test_connection_errors_are_upstream_unavailable():
    result = email_module.classify_smtp_error(ConnectionRefusedError("refused"), "client@example.com")
    assert type(result) is errors.UpstreamUnavailable


def test_send_email_raises_rate_limited_on_throttle(monkeypatch):
    class ThrottledSMTP:
        def __init__(self, host, port):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            return False

        def starttls(self):
            pass

        def login(self, user, password):
            pass

        def send_message(self, msg):
            raise smtplib.SMTPSenderRefused(421, b"4.7.0 Try again later", "noreply@example.com")

    monkeypatch.setattr(email_module, "SMTP_USER", "mailer@example.com")
    monkeypatch.setattr(email_module, "SMTP_PASSWORD", "secret")
    monkeypatch.setattr(email_module.smtplib, "SMTP", ThrottledSMTP)

    with pytest.raises(errors.RateLimited):
        email_module.send_email("client@example.com", "Offer OF-1", "body")
