"""
Tests for secure logging: no secret may reach a log record.
"""

import logging

from exchange_engine.logging_utils import (
    AdapterLogger,
    hash_body,
    mask_headers,
    mask_payload,
    mask_value,
    response_preview,
)


SECRET_TOKEN = "eyJhbGciOiJIUzI1NiJ9SECRETSECRETSECRET"


class TestMasking:
    """Masking helpers."""

    def test_mask_value(self):
        assert mask_value("abcdefghijkl") == "abcd...***"
        assert mask_value("short") == "***"
        assert mask_value(None) == "***"

    def test_mask_headers(self):
        masked = mask_headers({"Authorization": f"Bearer {SECRET_TOKEN}", "Accept": "application/json"})

        assert SECRET_TOKEN not in masked["Authorization"]
        assert masked["Accept"] == "application/json"

    def test_mask_payload_nested(self):
        masked = mask_payload({
            "access": SECRET_TOKEN,
            "data": [{"refresh": SECRET_TOKEN, "symbol": "BTC_USDT"}],
            "note": f"token is {SECRET_TOKEN}",
        })

        assert SECRET_TOKEN not in str(masked)
        assert masked["data"][0]["symbol"] == "BTC_USDT"

    def test_hash_body(self):
        assert hash_body(None) is None
        assert hash_body({"b": 1, "a": 2}) == hash_body({"a": 2, "b": 1})
        assert len(hash_body("x")) == 16

    def test_response_preview(self):
        preview = response_preview(f'{{"access": "{SECRET_TOKEN}"}}'.encode())

        assert SECRET_TOKEN not in preview
        assert response_preview(b"") is None
        assert len(response_preview(b"x" * 1000)) <= 200


class TestAdapterLogger:
    """Structured request / response / order logging."""

    def test_request_and_response_are_masked(self, caplog):
        log = AdapterLogger("bitpin")

        with caplog.at_level(logging.DEBUG, logger="exchange_adapter.bitpin"):
            request_id = log.log_request(
                operation="refresh_token",
                method="POST",
                endpoint="https://api.bitpin.test/api/v1/usr/refresh_token/",
                headers={"Authorization": f"Bearer {SECRET_TOKEN}"},
                body={"refresh": SECRET_TOKEN},
            )
            log.log_response(
                operation="refresh_token",
                request_id=request_id,
                status_code=200,
                latency_ms=12.3,
                body=f'{{"access": "{SECRET_TOKEN}", "refresh": "{SECRET_TOKEN}"}}'.encode(),
            )

        assert request_id == "bitpin-1"
        assert len(caplog.records) == 2
        assert SECRET_TOKEN not in caplog.text

    def test_error_response_logs_warning(self, caplog):
        log = AdapterLogger("nobitex")

        with caplog.at_level(logging.DEBUG, logger="exchange_adapter.nobitex"):
            log.log_response("place_order", "nobitex-1", 400, 5.0, b'{"status": "failed"}')

        assert caplog.records[-1].levelno == logging.WARNING

    def test_order_log_levels(self, caplog):
        log = AdapterLogger("bitpin")

        with caplog.at_level(logging.INFO, logger="exchange_adapter.bitpin"):
            log.log_order("place", exchange_order_id="1", status="new")
            log.log_order("cancel", exchange_order_id="1", error_message="HTTP 400")

        assert [r.levelno for r in caplog.records] == [logging.INFO, logging.WARNING]
