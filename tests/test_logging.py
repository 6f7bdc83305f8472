from unittest.mock import patch

import pytest
import structlog

from core.logging import BusinessEvents, configure_logging


class _TestLogger:
    def __init__(self):
        self.output = []

    def __call__(self, logger, method_name, event_dict):
        """Process log events and store them for test assertions"""
        self.output.append(event_dict.copy())
        return event_dict


@pytest.fixture
def captured_logs():
    """Route structlog through a capturing processor, then restore the app config."""
    captured = _TestLogger()
    structlog.reset_defaults()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            captured,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    yield captured
    configure_logging()


def test_structlog_json(captured_logs):
    log = structlog.get_logger("test")
    log.bind(foo="bar").info("hello world")

    assert len(captured_logs.output) > 0
    log_dict = captured_logs.output[-1]

    assert log_dict["foo"] == "bar"
    assert log_dict["event"] == "hello world"
    assert "timestamp" in log_dict
    assert log_dict["level"] == "info"


def test_payment_log_format(captured_logs):
    log = structlog.get_logger("test.payments")
    log.bind(payment_id="pi_456", kind="payment_intent", event_id="evt_1").info(
        BusinessEvents.PAYMENT_RECORDED
    )

    log_dict = captured_logs.output[-1]

    assert log_dict["payment_id"] == "pi_456"
    assert log_dict["kind"] == "payment_intent"
    assert log_dict["event_id"] == "evt_1"
    assert log_dict["event"] == "payment.recorded"
    assert log_dict["logger"] == "test.payments"
    assert log_dict["level"] == "info"


def test_api_request_logging(client, captured_logs):
    """API requests are logged with structured request details."""
    response = client.get("/api/verify-payment", params={"session_id": ""})
    assert response.status_code == 400

    api_logs = [
        log for log in captured_logs.output if log.get("event") == BusinessEvents.API_ENTRY
    ]
    assert len(api_logs) > 0

    log_entry = api_logs[0]
    assert log_entry["method"] == "GET"
    assert "/api/verify-payment" in log_entry["url"]
    assert log_entry["level"] == "info"
    assert "timestamp" in log_entry

    responses = [log for log in captured_logs.output if log.get("event") == "api.response"]
    assert responses[0]["status_code"] == 400


def test_api_request_logging_redacts_query(client, captured_logs, monkeypatch):
    monkeypatch.setenv("REDACT_QUERY_PARAMS", "true")

    client.get("/healthz", params={"session_id": "cs_secret"})

    entry = next(
        log for log in captured_logs.output if log.get("event") == BusinessEvents.API_ENTRY
    )
    assert "cs_secret" not in entry["url"]
    assert entry["query_params"] is None


def test_webhook_rejection_is_logged(client):
    with patch("webhooks.gateway.log") as mock_log:
        response = client.post("/webhooks/stripe", content=b"{}")

    assert response.status_code == 400
    mock_log.warning.assert_called_once()
    args, kwargs = mock_log.warning.call_args
    assert args[0] == BusinessEvents.WEBHOOK_REJECTED
    assert "stripe-signature" in kwargs["reason"]


def test_webhook_verified_is_logged(post_webhook):
    with patch("webhooks.gateway.log") as mock_log:
        response = post_webhook("payment_intent.succeeded", {"id": "pi_1"}, "evt_logged")

    assert response.status_code == 200
    mock_log.info.assert_called_once_with(
        BusinessEvents.WEBHOOK_VERIFIED,
        event_id="evt_logged",
        event_type="payment_intent.succeeded",
        livemode=False,
    )


def test_unrecognized_event_is_logged(post_webhook):
    with patch("webhooks.handlers.log") as mock_log:
        post_webhook("customer.created", {"id": "cus_1"})

    mock_log.info.assert_called_once()
    assert mock_log.info.call_args.args[0] == BusinessEvents.WEBHOOK_UNHANDLED
