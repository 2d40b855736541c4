import logging
from utils.logger import sanitize_log_data
from core.logging_config import SanitizingFilter, SecurityEventFilter

def test_password_redaction():
    data = {"email": "user@example.com", "password": "supersecret123"}
    sanitized = sanitize_log_data(data)

    assert sanitized["email"] == "user@example.com"
    assert sanitized["password"] == "***REDACTED***"


def test_token_partial_redaction():
    data = {"refresh_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.long_token_here"}
    sanitized = sanitize_log_data(data)

    assert len(sanitized["refresh_token"]) == 11
    assert sanitized["refresh_token"].startswith(data["refresh_token"][:8])
    assert sanitized["refresh_token"].endswith("...")
    assert "long_token_here" not in sanitized["refresh_token"]


def test_short_token_fully_redacted():
    sanitized = sanitize_log_data({"token": "abc"})
    assert sanitized["token"] == "***REDACTED***"


def test_nested_dict_sanitization():
    data = {
        "user": {
            "email": "user@example.com",
            "password": "secret123"
        }
    }
    sanitized = sanitize_log_data(data)

    assert sanitized["user"]["email"] == data["user"]["email"]
    assert sanitized["user"]["password"] == "***REDACTED***"


def test_input_dict_not_mutated():
    data = {"password": "secret123"}
    sanitize_log_data(data)
    assert data["password"] == "secret123"


def _record(name: str = "app", **extra) -> logging.LogRecord:
    record = logging.LogRecord(name, logging.INFO, __file__, 1, "msg", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_filter_redacts_extra_fields():
    record = _record(password="hunter22", user_id="42")

    assert SanitizingFilter().filter(record) is True
    assert record.password == "***REDACTED***"
    assert record.user_id == "42"


def test_security_filter_only_passes_security_logger():
    security_filter = SecurityEventFilter()

    assert security_filter.filter(_record("security")) is True
    assert security_filter.filter(_record("security.tokens")) is True
    assert security_filter.filter(_record("services.session_service")) is False
