"""
Test fixtures for deterministic testing.

This module provides:
- FakeUpstream: a scriptable upstream API served over httpx.MockTransport
"""

from .fake_upstream import (
    BASE_URL,
    FakeUpstream,
    bearer,
    error_response,
    json_response,
    requested_fields,
)

__all__ = [
    "BASE_URL",
    "FakeUpstream",
    "bearer",
    "error_response",
    "json_response",
    "requested_fields",
]
