from typing import Any, Dict, Optional
from urllib.parse import urljoin

import httpx
from flask import current_app

from careersync.errors import ConfigurationFailure


class GatewayError(Exception):
    """PayMongo call failed or returned an unusable response."""


def _client() -> httpx.Client:
    key = current_app.config.get("PAYMONGO_SECRET_KEY")
    if not key:
        raise ConfigurationFailure("PAYMONGO_SECRET_KEY is not configured")
    return httpx.Client(
        base_url=current_app.config.get("PAYMONGO_API_BASE", "https://api.paymongo.com/v1"),
        auth=(key, ""),
        headers={"accept": "application/json", "content-type": "application/json"},
        timeout=current_app.config.get("PAYMONGO_TIMEOUT_SECONDS", 10.0),
    )


def _absolute_url(path: str) -> str:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/") + "/"
    return urljoin(base, path.lstrip("/"))


def _post(client: httpx.Client, path: str, attributes: Dict[str, Any]) -> Dict[str, Any]:
    resp = client.post(path, json={"data": {"attributes": attributes}})
    if resp.status_code >= 400:
        raise GatewayError(f"POST {path} -> {resp.status_code}")
    try:
        return resp.json().get("data") or {}
    except ValueError as exc:
        raise GatewayError(f"POST {path} returned non-JSON body") from exc


def create_wallet_redirect(*, amount_minor: int, description: str) -> Optional[str]:
    """
    Create a GCash payment intent for exactly ``amount_minor`` centavos and
    return the wallet redirect URL (intent -> method -> attach).
    """
    with _client() as client:
        intent = _post(client, "/payment_intents", {
            "amount": int(amount_minor),
            "currency": "PHP",
            "payment_method_allowed": ["gcash"],
            "capture_type": "automatic",
            "description": description,
        })
        intent_id = intent.get("id")
        if not intent_id:
            raise GatewayError("payment intent has no id")

        method = _post(client, "/payment_methods", {"type": "gcash"})
        method_id = method.get("id")
        if not method_id:
            raise GatewayError("payment method has no id")

        attached = _post(client, f"/payment_intents/{intent_id}/attach", {
            "payment_method": method_id,
            "return_url": _absolute_url("plans"),
        })

    next_action = (attached.get("attributes") or {}).get("next_action") or {}
    return (next_action.get("redirect") or {}).get("url")
