"""
Glance v2 client for image retention.

This module provides the catalog handle used by the retention run: a single
authenticated requests session reused for every listing, patch and delete
call, with retries on page reads.
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

from image_retention.auth import authenticate_keystone, build_session
from image_retention.error_utils import CatalogRequestError
from image_retention.retry_utils import retry_operation

logger = logging.getLogger(__name__)

JSON_PATCH_CONTENT_TYPE = "application/openstack-images-v2.1-json-patch"

# Glance wording for a JSON-patch remove of a property the image does not have
ABSENT_PROPERTY_MARKERS = ("does not exist", "not found")


class GlanceClient:
    """Authenticated handle on a Glance v2 image service."""

    def __init__(self, session: requests.Session, endpoint: str, token: str, timeout: int = 60,
                 page_size: int = 25, retry=None, reauthenticate: Optional[Callable[[], str]] = None):
        """Initialize GlanceClient.

        Args:
            session: Session with TLS settings applied
            endpoint: Image service URL from the service catalog
            token: Keystone token sent as X-Auth-Token
            timeout: Per-request timeout in seconds
            page_size: Number of images requested per listing page
            retry: RetrySettings for listing reads (None disables retries)
            reauthenticate: Returns a fresh token when the current one is rejected with 401
        """
        self.session = session
        self.base_url = self._normalize_endpoint(endpoint)
        self.timeout = timeout
        self.page_size = page_size
        self.retry = retry
        self.reauthenticate = reauthenticate
        self.session.headers["X-Auth-Token"] = token

    @staticmethod
    def _normalize_endpoint(endpoint: str) -> str:
        url = endpoint.rstrip("/")
        if not url.endswith("/v2"):
            url = f"{url}/v2"
        return url

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        response = self.session.request(method, url, **kwargs)
        if response.status_code == 401 and self.reauthenticate is not None:
            logger.info("Image service rejected the token, re-authenticating")
            self.session.headers["X-Auth-Token"] = self.reauthenticate()
            response = self.session.request(method, url, **kwargs)
        if response.status_code >= 400:
            raise CatalogRequestError(method, url, response.status_code, response.text)
        return response

    def fetch_image_page(self, name: str, marker: Optional[str] = None) -> Dict[str, Any]:
        """Fetch one page of images whose name equals `name`.

        Returns:
            The decoded Glance listing document ({"images": [...], "next": ...})
        """
        params = {"name": name, "limit": self.page_size}
        if marker:
            params["marker"] = marker

        def fetch():
            return self._request("GET", "/images", params=params).json()

        if self.retry is None:
            return fetch()

        return retry_operation(
            fetch,
            max_retries=self.retry.max_retries,
            initial_delay=self.retry.initial_delay,
            max_delay=self.retry.max_delay,
            exponential_base=self.retry.exponential_base,
            jitter=self.retry.jitter,
            operation_name=f"list images '{name}'",
        )

    def remove_property(self, image_id: str, name: str) -> None:
        """Remove an image property. Removing an absent property is not an error."""
        body = [{"op": "remove", "path": f"/{name}"}]
        try:
            self._request(
                "PATCH",
                f"/images/{image_id}",
                json=body,
                headers={"Content-Type": JSON_PATCH_CONTENT_TYPE},
            )
        except CatalogRequestError as e:
            if e.status_code == 409 and _reports_absent_property(e.body, name):
                logger.debug(f"Property {name} already absent on image {image_id}")
                return
            raise

    def delete_image(self, image_id: str) -> None:
        self._request("DELETE", f"/images/{image_id}")

    def close(self) -> None:
        self.session.close()


def _reports_absent_property(body: Optional[str], name: str) -> bool:
    text = (body or "").lower()
    return name.lower() in text and any(marker in text for marker in ABSENT_PROPERTY_MARKERS)


def create_glance_client(settings) -> GlanceClient:
    """Authenticate with Keystone and return a ready GlanceClient.

    Args:
        settings: RetentionSettings for the run

    Raises:
        AuthenticationError: if the client cannot be established
    """
    access = settings.access
    session = build_session(access)
    keystone = authenticate_keystone(session, access)

    def reauthenticate() -> str:
        session.headers.pop("X-Auth-Token", None)
        return authenticate_keystone(session, access).token

    # An explicit token cannot be renewed
    return GlanceClient(
        session,
        keystone.image_endpoint,
        keystone.token,
        timeout=access.timeout,
        page_size=settings.page_size,
        retry=settings.retry,
        reauthenticate=None if access.token else reauthenticate,
    )
