"""
Test Configuration
==================

Pytest fixtures and test configuration for the MJPEG relay.
"""

import pytest
from fastapi.testclient import TestClient

from mjpeg_relay.auth import session_digest
from mjpeg_relay.relay import FrameRelay

from tests.helpers import TEST_BOUNDARY, TEST_ISSUER_KEY, TEST_SECRET, make_settings


@pytest.fixture
def relay():
    """Fresh relay with a short stall limit."""
    return FrameRelay(boundary=TEST_BOUNDARY, max_stalled_frames=3)


@pytest.fixture
def token_client():
    """App in token mode with issuance enabled."""
    from mjpeg_relay.main import create_app
    
    app = create_app(make_settings(secret=TEST_SECRET, issuer_key=TEST_ISSUER_KEY))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def open_client():
    """App in open mode."""
    from mjpeg_relay.main import create_app
    
    with TestClient(create_app(make_settings())) as client:
        yield client


@pytest.fixture
def digest_client():
    """App in shared-digest mode."""
    from mjpeg_relay.main import create_app
    
    app = create_app(make_settings(mode="digest", secret=TEST_SECRET))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def digest_for():
    """Digest a session with the test secret."""
    return lambda session: session_digest(TEST_SECRET, session)
