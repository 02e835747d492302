import pytest
import requests
from unittest.mock import patch

from conftest import make_response
from plushpal.config.constants import REALTIME_SESSIONS_URL
from plushpal.exceptions import AuthError
from plushpal.models.session import Credential
from plushpal.services.credentials import CredentialBroker


@pytest.fixture
def broker():
    return CredentialBroker("test-api-key")


class TestCredentialBroker:
    """Tests for ephemeral credential acquisition"""

    @pytest.mark.asyncio
    async def test_acquire_credential_success(self, broker):
        """A 200 response yields the client secret as a Credential"""
        response = make_response(200, json_data={
            "id": "sess_123",
            "client_secret": {"value": "ek_abc", "expires_at": 1893456000},
        })
        with patch("plushpal.services.credentials.requests.post", return_value=response) as mock_post:
            credential = await broker.acquire_credential("gpt-4o-realtime-preview-2024-12-17", "verse")

        assert isinstance(credential, Credential)
        assert credential.value.get_secret_value() == "ek_abc"
        assert credential.expires_at == 1893456000
        assert credential.bearer() == "Bearer ek_abc"

        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == REALTIME_SESSIONS_URL
        assert kwargs["json"] == {"model": "gpt-4o-realtime-preview-2024-12-17", "voice": "verse"}
        assert kwargs["headers"]["Authorization"] == "Bearer test-api-key"
        assert kwargs["timeout"] is None

    @pytest.mark.asyncio
    async def test_unauthorized_carries_status_and_body(self, broker):
        """A 401 surfaces as AuthError with the response body attached"""
        response = make_response(401, text='{"error":"invalid_key"}')
        with patch("plushpal.services.credentials.requests.post", return_value=response) as mock_post:
            with pytest.raises(AuthError) as exc_info:
                await broker.acquire_credential("model", "verse")

        assert exc_info.value.status == 401
        assert exc_info.value.body == '{"error":"invalid_key"}'
        assert "401" in str(exc_info.value)
        # No retries
        assert mock_post.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_client_secret(self, broker):
        """A 200 without client_secret.value is a malformed response"""
        response = make_response(200, text='{"id": "sess_123"}', json_data={"id": "sess_123"})
        with patch("plushpal.services.credentials.requests.post", return_value=response):
            with pytest.raises(AuthError, match="Failed to parse response") as exc_info:
                await broker.acquire_credential("model", "verse")

        assert exc_info.value.status == 200
        assert exc_info.value.body == '{"id": "sess_123"}'

    @pytest.mark.asyncio
    async def test_non_json_body(self, broker):
        """An unparseable body is reported as AuthError"""
        response = make_response(200, text="<html>oops</html>")
        with patch("plushpal.services.credentials.requests.post", return_value=response):
            with pytest.raises(AuthError, match="Failed to parse response"):
                await broker.acquire_credential("model", "verse")

    @pytest.mark.asyncio
    async def test_network_failure(self, broker):
        """Transport errors are wrapped without a status"""
        with patch(
            "plushpal.services.credentials.requests.post",
            side_effect=requests.ConnectionError("Name or service not known"),
        ) as mock_post:
            with pytest.raises(AuthError) as exc_info:
                await broker.acquire_credential("model", "verse")

        assert exc_info.value.status is None
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)
        assert mock_post.call_count == 1

    @pytest.mark.asyncio
    async def test_configured_timeout_is_passed(self):
        """An explicit timeout is forwarded to requests"""
        broker = CredentialBroker("key", sessions_url="https://example.test/sessions", timeout=7.5)
        response = make_response(200, json_data={"client_secret": {"value": "ek_1"}})
        with patch("plushpal.services.credentials.requests.post", return_value=response) as mock_post:
            credential = await broker.acquire_credential("model", "alloy")

        assert credential.expires_at is None
        assert mock_post.call_args[0][0] == "https://example.test/sessions"
        assert mock_post.call_args[1]["timeout"] == 7.5


class TestCredential:
    def test_is_expired(self):
        credential = Credential(value="ek", expires_at=100)
        assert credential.is_expired(now=100)
        assert credential.is_expired(now=150)
        assert not credential.is_expired(now=99)

    def test_no_expiry_never_expires(self):
        assert not Credential(value="ek").is_expired()

    def test_secret_is_masked(self):
        credential = Credential(value="ek_secret")
        assert "ek_secret" not in repr(credential)
