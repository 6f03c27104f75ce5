"""Tests for the identity client in local and remote mode."""
import httpx
import pytest

from conftest import OPERATOR_PASSWORD, make_operator
from pharmadesk.core import errors
from pharmadesk.core.errors import AuthError, format_error
from pharmadesk.services.identity_client import IdentityClient


def remote_client(handler):
    client = IdentityClient(transport=httpx.MockTransport(handler))
    client.mock_mode = False
    client.api_key = "test-key"
    return client


class TestLocalSignIn:
    def setup_method(self):
        self.client = IdentityClient()
        self.client.mock_mode = True

    def test_success(self, db_session, operator):
        identity = self.client.sign_in(operator.email, OPERATOR_PASSWORD, db_session)
        assert identity.uid == operator.id
        assert identity.display_name == "Pat Pharmacist"

    def test_wrong_password(self, db_session, operator):
        with pytest.raises(AuthError) as exc_info:
            self.client.sign_in(operator.email, "nope", db_session)
        assert exc_info.value.code == errors.AUTH_WRONG_PASSWORD
        assert exc_info.value.user_message == "Invalid email or password. Please try again."

    def test_unknown_user(self, db_session):
        with pytest.raises(AuthError) as exc_info:
            self.client.sign_in("ghost@example.com", "x", db_session)
        assert exc_info.value.code == errors.AUTH_USER_NOT_FOUND

    def test_disabled_account(self, db_session):
        make_operator(db_session, email="old@example.com", active=False)
        with pytest.raises(AuthError) as exc_info:
            self.client.sign_in("old@example.com", OPERATOR_PASSWORD, db_session)
        assert exc_info.value.code == errors.AUTH_USER_DISABLED

    def test_malformed_email_is_rejected_before_lookup(self):
        with pytest.raises(AuthError) as exc_info:
            self.client.sign_in("not-an-email", "x")
        assert exc_info.value.code == errors.AUTH_INVALID_EMAIL


class TestRemoteSignIn:
    def test_success(self):
        def handler(request):
            assert request.url.params["key"] == "test-key"
            assert request.url.path.endswith("accounts:signInWithPassword")
            return httpx.Response(200, json={"localId": "uid-1", "email": "a@b.com", "displayName": "Al"})

        identity = remote_client(handler).sign_in("a@b.com", "pw")
        assert (identity.uid, identity.email, identity.display_name) == ("uid-1", "a@b.com", "Al")

    @pytest.mark.parametrize("provider_message, code", [
        ("EMAIL_NOT_FOUND", errors.AUTH_USER_NOT_FOUND),
        ("INVALID_PASSWORD", errors.AUTH_WRONG_PASSWORD),
        ("INVALID_LOGIN_CREDENTIALS", errors.AUTH_INVALID_CREDENTIAL),
        ("TOO_MANY_ATTEMPTS_TRY_LATER : Access temporarily disabled", errors.AUTH_TOO_MANY_REQUESTS),
        ("USER_DISABLED", errors.AUTH_USER_DISABLED),
        ("SOMETHING_NEW", errors.AUTH_INVALID_CREDENTIAL),
    ])
    def test_provider_errors_are_mapped(self, provider_message, code):
        def handler(request):
            return httpx.Response(400, json={"error": {"code": 400, "message": provider_message}})

        with pytest.raises(AuthError) as exc_info:
            remote_client(handler).sign_in("a@b.com", "pw")
        assert exc_info.value.code == code

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AuthError) as exc_info:
            remote_client(handler).sign_in("a@b.com", "pw")
        assert exc_info.value.code == errors.AUTH_NETWORK_FAILED
        assert exc_info.value.user_message == "Network error. Please check your internet connection."


class TestFormatError:
    def test_known_and_unknown_codes(self):
        assert format_error(errors.AUTH_TOO_MANY_REQUESTS) == (
            "Too many failed login attempts. Please try again later."
        )
        assert format_error("storage/quota") == errors.DEFAULT_MESSAGE
        assert format_error(None) == errors.UNKNOWN_MESSAGE
        assert format_error("") == errors.UNKNOWN_MESSAGE
