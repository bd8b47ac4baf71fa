"""Builders for CloudFlare API payloads used across tests."""

from __future__ import annotations

SECRET = "SECRET"
API_TOKEN = "cf-test-token-123456"


def zone_payload(
    zone_id: str,
    name: str,
    *,
    status: str = "active",
    paused: bool = False,
) -> dict:
    """Build a zone as returned by the CloudFlare API."""
    return {"id": zone_id, "name": name, "status": status, "paused": paused}


def record_payload(
    record_id: str,
    name: str,
    *,
    record_type: str = "A",
    content: str = "192.0.2.1",
) -> dict:
    """Build a DNS record as returned by the CloudFlare API."""
    return {
        "id": record_id,
        "type": record_type,
        "name": name,
        "content": content,
        "proxied": False,
        "ttl": 1,
    }


def api_body(result=None, *, success: bool = True, errors=None) -> dict:
    """Build a CloudFlare API response envelope."""
    return {
        "success": success,
        "errors": errors or [],
        "messages": [],
        "result": result,
    }
