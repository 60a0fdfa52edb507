import json
import logging
from unittest.mock import patch

from pedidos_express.core.logging_setup import JsonFormatter, mask_sensitive
from pedidos_express.core.request_context import clear_request_context, set_request_context
from pedidos_express.services import sessions
from pedidos_express.services.passwords import hash_password, verify_password


def test_session_token_roundtrip_and_tamper():
    token = sessions.create_session_token("user-1", "tenant-1")

    payload = sessions.decode_session_token(token)

    assert payload["user_id"] == "user-1"
    assert payload["tenant_id"] == "tenant-1"
    assert sessions.decode_session_token(token[:-2] + "xx") is None
    assert sessions.decode_session_token("") is None


def test_expired_session_is_rejected():
    token = sessions.create_session_token("user-1", None)

    with patch("pedidos_express.services.sessions.time.time", return_value=4_102_444_800):
        assert sessions.decode_session_token(token) is None


def test_password_hashing():
    hashed = hash_password("segredo")

    assert hashed != "segredo"
    assert verify_password("segredo", hashed) is True
    assert verify_password("outro", hashed) is False


def test_mask_sensitive_values():
    masked = mask_sensitive("Authorization: Bearer abc123 token=xyz password=hunter2 api_key=pk_live")

    assert "abc123" not in masked
    assert "xyz" not in masked
    assert "hunter2" not in masked
    assert "pk_live" not in masked


def test_json_formatter_includes_request_context():
    set_request_context(request_id="req-9", tenant_id="tenant-1", auth_source="api_key")
    try:
        record = logging.LogRecord(
            name="pedidos_express.test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="envio %s token=%s",
            args=("ok", "segredo"),
            exc_info=None,
        )
        record.order_id = "order-1"
        payload = json.loads(JsonFormatter().format(record))
    finally:
        clear_request_context()

    assert payload["request_id"] == "req-9"
    assert payload["tenant_id"] == "tenant-1"
    assert payload["auth_source"] == "api_key"
    assert payload["order_id"] == "order-1"
    assert payload["message"] == "envio ok token=***"
