"""
Access Gate Tests
=================

Credential extraction, the three policies, admin access, token issuance
and auth mode resolution.
"""

import hmac
from unittest.mock import patch

import jwt
import pytest

from mjpeg_relay.auth import (
    AccessGate,
    OpenPolicy,
    SharedDigestPolicy,
    SignedTokenPolicy,
    TokenIssuer,
    constant_time_equals,
    extract_credential,
    issue_token,
    require_valid_session_key,
    session_digest,
)
from mjpeg_relay.config import AuthConfig
from mjpeg_relay.exceptions import AccessDenied, ConfigurationError
from mjpeg_relay.models import Capability, IssueRequest, RejectionReason

from tests.helpers import TEST_ADMIN_CODE, TEST_ISSUER_KEY, TEST_SECRET, make_token


def assert_denied(reason: RejectionReason, func, *args):
    with pytest.raises(AccessDenied) as exc_info:
        func(*args)
    assert exc_info.value.reason == reason
    return exc_info.value


class TestExtractCredential:
    """Header and query parameter extraction."""
    
    def test_bearer_header(self):
        assert extract_credential("Bearer abc.def") == "abc.def"
    
    def test_bearer_scheme_is_case_insensitive(self):
        assert extract_credential("bearer   tok ") == "tok"
    
    def test_header_wins_over_query(self):
        assert extract_credential("Bearer from-header", "from-query") == "from-header"
    
    def test_query_fallback(self):
        assert extract_credential(None, "from-query") == "from-query"
        assert extract_credential("Basic dXNlcg==", "from-query") == "from-query"
    
    def test_nothing_supplied(self):
        assert extract_credential(None, None) is None
        assert extract_credential("Bearer ", "  ") is None


class TestSignedTokenPolicy:
    """HS256 tokens bound to session and capability."""
    
    @pytest.fixture
    def policy(self):
        return SignedTokenPolicy(TEST_SECRET)
    
    def test_valid_token(self, policy):
        token = make_token("s1", Capability.VIEW)
        assert policy.verify("s1", Capability.VIEW, token) == Capability.VIEW
    
    def test_missing_token(self, policy):
        assert_denied(RejectionReason.MISSING_CREDENTIAL, policy.verify, "s1", Capability.VIEW, None)
    
    def test_other_session_is_forbidden(self, policy):
        token = make_token("A", Capability.VIEW)
        assert_denied(RejectionReason.FORBIDDEN, policy.verify, "B", Capability.VIEW, token)
        
        upload = make_token("A", Capability.UPLOAD)
        assert_denied(RejectionReason.FORBIDDEN, policy.verify, "B", Capability.UPLOAD, upload)
    
    def test_wrong_capability_is_forbidden(self, policy):
        token = make_token("s1", Capability.VIEW)
        assert_denied(RejectionReason.FORBIDDEN, policy.verify, "s1", Capability.UPLOAD, token)
    
    def test_expired_token_is_invalid(self, policy):
        token = make_token("s1", Capability.VIEW, ttl_seconds=-5)
        error = assert_denied(
            RejectionReason.INVALID_CREDENTIAL, policy.verify, "s1", Capability.VIEW, token
        )
        assert error.detail == "token expired"
    
    def test_leeway_tolerates_small_skew(self):
        token = make_token("s1", Capability.VIEW, ttl_seconds=-5)
        policy = SignedTokenPolicy(TEST_SECRET, leeway_seconds=30)
        assert policy.verify("s1", Capability.VIEW, token) == Capability.VIEW
    
    def test_wrong_secret_is_invalid(self, policy):
        token, _ = issue_token("another-secret", "s1", Capability.VIEW, 60)
        assert_denied(RejectionReason.INVALID_CREDENTIAL, policy.verify, "s1", Capability.VIEW, token)
    
    def test_garbage_is_invalid(self, policy):
        assert_denied(RejectionReason.INVALID_CREDENTIAL, policy.verify, "s1", Capability.VIEW, "not-a-jwt")
    
    def test_unsigned_token_is_invalid(self, policy):
        token = jwt.encode({"sid": "s1", "cap": "view", "exp": 4102444800}, "", algorithm="none")
        assert_denied(RejectionReason.INVALID_CREDENTIAL, policy.verify, "s1", Capability.VIEW, token)
    
    def test_missing_claims_are_invalid(self, policy):
        token = jwt.encode({"sid": "s1", "exp": 4102444800}, TEST_SECRET, algorithm="HS256")
        assert_denied(RejectionReason.INVALID_CREDENTIAL, policy.verify, "s1", Capability.VIEW, token)
    
    def test_unknown_capability_is_invalid(self, policy):
        token = jwt.encode(
            {"sid": "s1", "cap": "superuser", "exp": 4102444800},
            TEST_SECRET,
            algorithm="HS256",
        )
        assert_denied(RejectionReason.INVALID_CREDENTIAL, policy.verify, "s1", Capability.VIEW, token)
    
    def test_requires_secret(self):
        with pytest.raises(ValueError):
            SignedTokenPolicy("")


class TestSharedDigestPolicy:
    """sha256(secret:session) digests."""
    
    @pytest.fixture
    def policy(self):
        return SharedDigestPolicy(TEST_SECRET)
    
    def test_digest_format(self):
        digest = session_digest("secret", "42")
        assert len(digest) == 64
        assert digest == session_digest("secret", "42")
        assert digest != session_digest("secret", "43")
    
    def test_one_digest_opens_view_and_upload(self, policy):
        digest = session_digest(TEST_SECRET, "s1")
        assert policy.verify("s1", Capability.VIEW, digest) == Capability.VIEW
        assert policy.verify("s1", Capability.UPLOAD, digest) == Capability.UPLOAD
    
    def test_digest_for_other_session_is_rejected(self, policy):
        digest = session_digest(TEST_SECRET, "A")
        assert_denied(RejectionReason.INVALID_CREDENTIAL, policy.verify, "B", Capability.VIEW, digest)
    
    def test_missing_digest(self, policy):
        assert_denied(RejectionReason.MISSING_CREDENTIAL, policy.verify, "s1", Capability.UPLOAD, "")
    
    def test_comparison_uses_constant_time_compare(self, policy):
        digest = session_digest(TEST_SECRET, "s1")
        with patch("mjpeg_relay.auth.credentials.hmac.compare_digest", wraps=hmac.compare_digest) as spy:
            policy.verify("s1", Capability.VIEW, digest)
            with pytest.raises(AccessDenied):
                policy.verify("s1", Capability.VIEW, "0" * 64)
        assert spy.call_count == 2
    
    def test_mismatch_position_does_not_matter(self):
        expected = session_digest(TEST_SECRET, "s1")
        for position in (0, 31, 63):
            flipped = "0" if expected[position] != "0" else "1"
            candidate = expected[:position] + flipped + expected[position + 1:]
            assert constant_time_equals(expected, candidate) is False
        assert constant_time_equals(expected, expected[:-1]) is False
        assert constant_time_equals(expected, expected) is True


class TestOpenPolicy:
    
    def test_grants_everything(self):
        policy = OpenPolicy()
        assert policy.verify("any", Capability.UPLOAD, None) == Capability.UPLOAD
        assert policy.mode == "open"


class TestAccessGate:
    """Admin access and gate construction."""
    
    @pytest.fixture
    def gate(self):
        return AccessGate(SignedTokenPolicy(TEST_SECRET), admin_code=TEST_ADMIN_CODE)
    
    def test_authorize_delegates_to_policy(self, gate):
        token = make_token("s1", Capability.UPLOAD)
        assert gate.authorize("s1", Capability.UPLOAD, token) == Capability.UPLOAD
        assert_denied(RejectionReason.FORBIDDEN, gate.authorize, "s2", Capability.UPLOAD, token)
    
    def test_admin_code(self, gate):
        assert gate.authorize_admin(TEST_ADMIN_CODE) == Capability.ADMIN
        assert_denied(RejectionReason.MISSING_CREDENTIAL, gate.authorize_admin, None)
        assert_denied(RejectionReason.INVALID_CREDENTIAL, gate.authorize_admin, "guess")
    
    def test_viewer_token_is_not_an_admin_code(self, gate):
        token = make_token("s1", Capability.VIEW)
        assert_denied(RejectionReason.INVALID_CREDENTIAL, gate.authorize_admin, token)
    
    def test_from_config_open(self):
        gate = AccessGate.from_config(AuthConfig(admin_code=TEST_ADMIN_CODE))
        assert gate.mode == "open"
        assert gate.enforcing is False
        assert gate.issuer is None
    
    def test_from_config_token_with_issuer(self):
        gate = AccessGate.from_config(
            AuthConfig(secret=TEST_SECRET, issuer_key=TEST_ISSUER_KEY, admin_code=TEST_ADMIN_CODE)
        )
        assert gate.mode == "token"
        assert gate.enforcing is True
        assert gate.issuer is not None
    
    def test_from_config_digest_has_no_issuer(self):
        gate = AccessGate.from_config(
            AuthConfig(mode="digest", secret=TEST_SECRET, issuer_key=TEST_ISSUER_KEY)
        )
        assert gate.mode == "digest"
        assert gate.issuer is None
    
    def test_generated_admin_code_is_not_guessable_from_empty(self):
        gate = AccessGate.from_config(AuthConfig())
        assert_denied(RejectionReason.MISSING_CREDENTIAL, gate.authorize_admin, "")
        assert_denied(RejectionReason.INVALID_CREDENTIAL, gate.authorize_admin, "admin")
    
    def test_issue_unavailable(self):
        gate = AccessGate(OpenPolicy(), admin_code=TEST_ADMIN_CODE)
        request = IssueRequest(key="k", session="s1", capability=Capability.VIEW)
        assert_denied(RejectionReason.NOT_FOUND, gate.issue, request)


class TestTokenIssuer:
    """Minting for operators."""
    
    @pytest.fixture
    def issuer(self):
        return TokenIssuer(TEST_SECRET, TEST_ISSUER_KEY, max_ttl_seconds=600)
    
    def test_issued_token_verifies(self, issuer):
        response = issuer.issue(
            IssueRequest(key=TEST_ISSUER_KEY, session="s1", capability=Capability.UPLOAD, ttl_seconds=60)
        )
        assert response.session == "s1"
        assert response.capability == Capability.UPLOAD
        policy = SignedTokenPolicy(TEST_SECRET)
        assert policy.verify("s1", Capability.UPLOAD, response.token) == Capability.UPLOAD
    
    def test_wrong_key(self, issuer):
        request = IssueRequest(key="nope", session="s1", capability=Capability.VIEW)
        assert_denied(RejectionReason.INVALID_CREDENTIAL, issuer.issue, request)
    
    def test_admin_capability_cannot_be_minted(self, issuer):
        request = IssueRequest(key=TEST_ISSUER_KEY, session="s1", capability=Capability.ADMIN)
        assert_denied(RejectionReason.BAD_REQUEST, issuer.issue, request)
    
    @pytest.mark.parametrize("ttl", [0, -1, 601])
    def test_ttl_bounds(self, issuer, ttl):
        request = IssueRequest(key=TEST_ISSUER_KEY, session="s1", capability=Capability.VIEW, ttl_seconds=ttl)
        assert_denied(RejectionReason.BAD_REQUEST, issuer.issue, request)
    
    def test_malformed_session(self, issuer):
        request = IssueRequest(key=TEST_ISSUER_KEY, session="has space", capability=Capability.VIEW)
        assert_denied(RejectionReason.BAD_REQUEST, issuer.issue, request)


class TestSessionKeyValidation:
    
    @pytest.mark.parametrize("session", ["76561198000000001", "cam_1", "a.b-c:d"])
    def test_valid(self, session):
        assert require_valid_session_key(session) == session
    
    @pytest.mark.parametrize("session", ["", "x" * 129, "bad/slash", "sp ace", "semi;colon"])
    def test_invalid(self, session):
        assert_denied(RejectionReason.BAD_REQUEST, require_valid_session_key, session)


class TestAuthModeResolution:
    """Startup-time mode selection."""
    
    @pytest.mark.parametrize(
        "mode, secret, expected",
        [
            (None, None, "open"),
            (None, "s", "token"),
            ("token", "s", "token"),
            ("digest", "s", "digest"),
            ("open", None, "open"),
            ("TOKEN", "s", "token"),
        ],
    )
    def test_resolves(self, mode, secret, expected):
        assert AuthConfig(mode=mode, secret=secret).resolve_mode() == expected
    
    @pytest.mark.parametrize(
        "mode, secret",
        [
            (None, ""),
            ("token", None),
            ("token", ""),
            ("digest", None),
            ("open", "s"),
            ("bogus", "s"),
        ],
    )
    def test_misconfiguration_fails(self, mode, secret):
        with pytest.raises(ConfigurationError):
            AuthConfig(mode=mode, secret=secret).resolve_mode()
