"""Shared fixtures for the ParcelLens test suite.

Provides a Flask test client and helpers for building HERE browse items.
External HTTP is always mocked; no test reaches a real provider.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keys must be present BEFORE importing app (startup warning, /healthz)
os.environ.setdefault("HERE_API_KEY", "fake-key-for-tests")
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("GEOAPIFY_API_KEY", None)
os.environ.pop("TRAFFIC_STRATEGY", None)

from app import app, limiter  # noqa: E402
from pl_trace import clear_trace  # noqa: E402


@pytest.fixture(autouse=True)
def _no_trace_leak():
    """Thread-local trace state must not leak between tests."""
    clear_trace()
    yield
    clear_trace()


@pytest.fixture()
def client():
    """Flask test client with rate limiting off."""
    app.config["TESTING"] = True
    limiter.enabled = False
    with app.test_client() as c:
        yield c
    limiter.enabled = True


def make_place(title, lat, lng, categories=(), label=None):
    """A HERE browse item as returned by /browse."""
    return {
        "title": title,
        "position": {"lat": lat, "lng": lng},
        "address": {"label": label or f"{title}, Springfield"},
        "categories": [{"id": cid, "name": name} for cid, name in categories],
    }
