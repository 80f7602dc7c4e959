"""Unit tests for image_retention/glance_client.py"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))

from image_retention.auth import KeystoneAccess
from image_retention.config_manager import OpenStackAccess, RetentionSettings, RetrySettings
from image_retention.error_utils import CatalogRequestError
from image_retention.glance_client import JSON_PATCH_CONTENT_TYPE, GlanceClient, create_glance_client


def response(status_code=200, body=None, text=""):
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = body if body is not None else {}
    mock.text = text
    return mock


@pytest.fixture
def session():
    session = requests.Session()
    with patch.object(session, "request") as mock_request:
        session.mock_request = mock_request
        yield session


class TestGlanceClientInitialization:
    """Tests for GlanceClient construction"""

    def test_sets_auth_token(self, session):
        """Test the Keystone token is sent on every request"""
        GlanceClient(session, "https://glance.example.com:9292", "tok-123")
        assert session.headers["X-Auth-Token"] == "tok-123"

    @pytest.mark.parametrize(
        "endpoint,expected",
        [
            ("https://glance.example.com:9292", "https://glance.example.com:9292/v2"),
            ("https://glance.example.com:9292/", "https://glance.example.com:9292/v2"),
            ("https://cloud.example.com/image/v2", "https://cloud.example.com/image/v2"),
        ],
    )
    def test_normalizes_endpoint(self, session, endpoint, expected):
        """Test the v2 API root is derived from the catalog endpoint"""
        assert GlanceClient(session, endpoint, "tok").base_url == expected


class TestFetchImagePage:
    """Tests for image listing requests"""

    def test_requests_name_and_limit(self, session):
        """Test the listing filters on name with the configured page size"""
        session.mock_request.return_value = response(body={"images": []})
        client = GlanceClient(session, "https://glance", "tok", timeout=30, page_size=50)

        assert client.fetch_image_page("base-image") == {"images": []}
        session.mock_request.assert_called_once_with(
            "GET",
            "https://glance/v2/images",
            params={"name": "base-image", "limit": 50},
            timeout=30,
        )

    def test_passes_marker(self, session):
        """Test the marker of the previous page is forwarded"""
        session.mock_request.return_value = response(body={"images": []})
        client = GlanceClient(session, "https://glance", "tok")

        client.fetch_image_page("base-image", "abc")

        assert session.mock_request.call_args.kwargs["params"]["marker"] == "abc"

    def test_error_status_raises(self, session):
        """Test HTTP errors raise CatalogRequestError"""
        session.mock_request.return_value = response(status_code=401, text="unauthorized")
        client = GlanceClient(session, "https://glance", "tok")

        with pytest.raises(CatalogRequestError) as exc_info:
            client.fetch_image_page("base-image")

        assert exc_info.value.status_code == 401

    def test_retries_transient_errors(self, session):
        """Test a 503 on a listing read is retried"""
        session.mock_request.side_effect = [
            response(status_code=503, text="busy"),
            response(body={"images": []}),
        ]
        retry = RetrySettings(max_retries=2, initial_delay=0.0, max_delay=0.0, jitter=False)
        client = GlanceClient(session, "https://glance", "tok", retry=retry)

        assert client.fetch_image_page("base-image") == {"images": []}

        assert session.mock_request.call_count == 2


class TestMutations:
    """Tests for metadata patch and delete requests"""

    def test_remove_property_sends_json_patch(self, session):
        """Test the verification property is removed with a JSON patch"""
        session.mock_request.return_value = response(status_code=200)
        client = GlanceClient(session, "https://glance", "tok", timeout=10)

        client.remove_property("img-1", "signature_verified")

        session.mock_request.assert_called_once_with(
            "PATCH",
            "https://glance/v2/images/img-1",
            json=[{"op": "remove", "path": "/signature_verified"}],
            headers={"Content-Type": JSON_PATCH_CONTENT_TYPE},
            timeout=10,
        )

    def test_remove_absent_property_is_not_an_error(self, session):
        """Test a 409 for an absent property is treated as success"""
        session.mock_request.return_value = response(status_code=409, text="Property signature_verified does not exist.")
        client = GlanceClient(session, "https://glance", "tok")

        client.remove_property("img-1", "signature_verified")

    def test_other_conflicts_raise(self, session):
        """Test a 409 that is not about the missing property still fails"""
        session.mock_request.return_value = response(status_code=409, text="Image status transition from killed is not allowed")
        client = GlanceClient(session, "https://glance", "tok")

        with pytest.raises(CatalogRequestError) as exc_info:
            client.remove_property("img-1", "signature_verified")

        assert exc_info.value.status_code == 409

    def test_remove_property_not_retried(self, session):
        """Test patch failures propagate on the first attempt"""
        session.mock_request.return_value = response(status_code=503)
        client = GlanceClient(session, "https://glance", "tok", retry=RetrySettings())

        with pytest.raises(CatalogRequestError):
            client.remove_property("img-1", "signature_verified")

        assert session.mock_request.call_count == 1

    def test_delete_image(self, session):
        """Test delete issues DELETE on the image"""
        session.mock_request.return_value = response(status_code=204)
        client = GlanceClient(session, "https://glance", "tok", timeout=10)

        client.delete_image("img-1")

        session.mock_request.assert_called_once_with("DELETE", "https://glance/v2/images/img-1", timeout=10)

    def test_delete_missing_image_raises(self, session):
        """Test deleting an image that no longer exists is an error"""
        session.mock_request.return_value = response(status_code=404, text="not found")
        client = GlanceClient(session, "https://glance", "tok")

        with pytest.raises(CatalogRequestError) as exc_info:
            client.delete_image("img-1")

        assert exc_info.value.status_code == 404


class TestReauthentication:
    """Tests for token renewal on 401"""

    def test_expired_token_is_renewed_and_request_replayed(self, session):
        """Test a 401 triggers one re-authentication and the request is sent again"""
        session.mock_request.side_effect = [response(status_code=401), response(status_code=204)]
        reauthenticate = MagicMock(return_value="tok-new")
        client = GlanceClient(session, "https://glance", "tok-old", reauthenticate=reauthenticate)

        client.delete_image("img-1")

        reauthenticate.assert_called_once_with()
        assert session.mock_request.call_count == 2
        assert session.headers["X-Auth-Token"] == "tok-new"

    def test_second_rejection_raises(self, session):
        """Test a token rejected again after renewal fails the request"""
        session.mock_request.return_value = response(status_code=401, text="unauthorized")
        reauthenticate = MagicMock(return_value="tok-new")
        client = GlanceClient(session, "https://glance", "tok-old", reauthenticate=reauthenticate)

        with pytest.raises(CatalogRequestError) as exc_info:
            client.delete_image("img-1")

        assert exc_info.value.status_code == 401
        reauthenticate.assert_called_once_with()
        assert session.mock_request.call_count == 2

    def test_without_callback_401_raises(self, session):
        """Test a 401 is an error when the client cannot renew its token"""
        session.mock_request.return_value = response(status_code=401)
        client = GlanceClient(session, "https://glance", "tok")

        with pytest.raises(CatalogRequestError):
            client.delete_image("img-1")

        assert session.mock_request.call_count == 1


class TestCreateGlanceClient:
    """Tests for create_glance_client"""

    @pytest.fixture
    def settings(self):
        access = OpenStackAccess(identity_endpoint="https://keystone", username="u", password="p")
        return RetentionSettings(identifier="base-image", access=access)

    def test_password_auth_can_renew_token(self, session, settings):
        """Test the client re-runs Keystone authentication to renew its token"""
        with patch("image_retention.glance_client.build_session", return_value=session), \
                patch("image_retention.glance_client.authenticate_keystone") as authenticate:
            authenticate.side_effect = [
                KeystoneAccess(token="tok-1", image_endpoint="https://glance"),
                KeystoneAccess(token="tok-2", image_endpoint="https://glance"),
            ]
            client = create_glance_client(settings)

            assert client.reauthenticate() == "tok-2"

        assert authenticate.call_count == 2
        assert client.base_url == "https://glance/v2"

    def test_explicit_token_is_not_renewed(self, session):
        """Test a configured token is used as is"""
        settings = RetentionSettings(identifier="base-image",
                                     access=OpenStackAccess(identity_endpoint="https://keystone", token="fixed"))
        with patch("image_retention.glance_client.build_session", return_value=session), \
                patch("image_retention.glance_client.authenticate_keystone",
                      return_value=KeystoneAccess(token="fixed", image_endpoint="https://glance")):
            client = create_glance_client(settings)

        assert client.reauthenticate is None
