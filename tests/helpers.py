"""
Test Helpers
============

Constants and small utilities shared by the test modules.
"""

import asyncio

from mjpeg_relay.auth import issue_token
from mjpeg_relay.config import AuthConfig, Settings, StreamConfig
from mjpeg_relay.models import Capability


TEST_SECRET = "test-secret"
TEST_ADMIN_CODE = "admin-code"
TEST_ISSUER_KEY = "issuer-key"
TEST_BOUNDARY = "testboundary"

# Minimal JPEG-looking payloads (SOI ... EOI)
FRAME_1 = b"\xff\xd8frame-one\xff\xd9"
FRAME_2 = b"\xff\xd8frame-two-longer\xff\xd9"


def make_settings(**auth) -> Settings:
    """Settings with a fixed boundary and the given auth section."""
    auth.setdefault("admin_code", TEST_ADMIN_CODE)
    return Settings(
        stream=StreamConfig(boundary=TEST_BOUNDARY, max_frame_bytes=1024),
        auth=AuthConfig(**auth),
    )


def make_token(session: str, capability: Capability, ttl_seconds: int = 60) -> str:
    token, _ = issue_token(TEST_SECRET, session, capability, ttl_seconds)
    return token


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)
