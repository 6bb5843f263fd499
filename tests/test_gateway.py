import json

import httpx
import pytest
from careersync.errors import ConfigurationFailure
from careersync.services import gateway

def _mock_client(calls, fail_on=None):
    def handler(request):
        calls.append((request.url.path, json.loads(request.content)))
        if request.url.path == fail_on:
            return httpx.Response(500, json={"errors": [{"code": "internal"}]})
        if request.url.path.endswith("/attach"):
            return httpx.Response(200, json={"data": {"id": "pi_1", "attributes": {
                "next_action": {"type": "redirect", "redirect": {"url": "https://gcash.example/pay/pi_1"}},
            }}})
        if request.url.path.endswith("/payment_methods"):
            return httpx.Response(200, json={"data": {"id": "pm_1"}})
        return httpx.Response(200, json={"data": {"id": "pi_1"}})
    return httpx.Client(base_url="https://api.paymongo.test/v1", transport=httpx.MockTransport(handler))

def test_wallet_redirect_creates_intent_method_and_attaches(app, monkeypatch):
    calls = []
    monkeypatch.setattr(gateway, "_client", lambda: _mock_client(calls))
    with app.test_request_context():
        url = gateway.create_wallet_redirect(amount_minor=137, description="CareerSync Base Token - ₱1.37")

    assert url == "https://gcash.example/pay/pi_1"
    paths = [p for p, _ in calls]
    assert paths == ["/v1/payment_intents", "/v1/payment_methods", "/v1/payment_intents/pi_1/attach"]
    intent = calls[0][1]["data"]["attributes"]
    assert intent["amount"] == 137
    assert intent["currency"] == "PHP"
    assert intent["payment_method_allowed"] == ["gcash"]
    assert calls[2][1]["data"]["attributes"]["payment_method"] == "pm_1"
    assert calls[2][1]["data"]["attributes"]["return_url"] == "http://example.test/plans"

def test_gateway_http_error_raises(app, monkeypatch):
    monkeypatch.setattr(gateway, "_client", lambda: _mock_client([], fail_on="/v1/payment_methods"))
    with app.test_request_context():
        with pytest.raises(gateway.GatewayError):
            gateway.create_wallet_redirect(amount_minor=137, description="x")

def test_missing_secret_key_is_configuration_failure(app, monkeypatch):
    monkeypatch.setitem(app.config, "PAYMONGO_SECRET_KEY", None)
    with app.app_context():
        with pytest.raises(ConfigurationFailure):
            gateway.create_wallet_redirect(amount_minor=137, description="x")
