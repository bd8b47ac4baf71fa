"""Shared fixtures for DynDNS Relay tests."""

from __future__ import annotations

import pytest
import respx

from dyndns_relay.cloudflare import CF_API_BASE
from dyndns_relay.config import AuthConfig, Config, ProviderConfig
from payloads import API_TOKEN, SECRET


@pytest.fixture
def config() -> Config:
    """Config with the shared secret and API token set."""
    return Config(
        auth=AuthConfig(code=SECRET),
        provider=ProviderConfig(api_token=API_TOKEN),
    )


@pytest.fixture
def cf_mock():
    """Mock the CloudFlare API; unmatched requests raise."""
    with respx.mock(base_url=CF_API_BASE, assert_all_called=False) as mock:
        yield mock
