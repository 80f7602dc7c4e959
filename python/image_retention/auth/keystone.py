"""
Keystone v3 authentication and image endpoint discovery.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from image_retention import __version__
from image_retention.error_utils import AuthenticationError, create_auth_error

logger = logging.getLogger(__name__)

USER_AGENT = f"image-retention/{__version__}"


@dataclass(frozen=True)
class KeystoneAccess:
    token: str
    image_endpoint: str


def build_session(access) -> requests.Session:
    """Create a requests session carrying the TLS settings of an OpenStackAccess.

    Args:
        access: OpenStackAccess with cacert/cert/key/insecure settings

    Raises:
        AuthenticationError: if a configured certificate file does not exist
    """
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})

    if access.cacert:
        if not os.path.isfile(access.cacert):
            raise AuthenticationError(
                f"CA certificate file not found: {access.cacert}",
                suggestions=["Check openstack.cacert / OS_CACERT points to a readable PEM bundle"],
                details={"cacert": access.cacert},
            )
        session.verify = access.cacert

    if access.insecure:
        logger.warning("TLS certificate verification is disabled for the OpenStack session")
        session.verify = False

    if access.cert and access.key:
        for path in (access.cert, access.key):
            if not os.path.isfile(path):
                raise AuthenticationError(
                    f"Client certificate file not found: {path}",
                    suggestions=["Check openstack.cert and openstack.key / OS_CERT and OS_KEY"],
                    details={"cert": access.cert, "key": access.key},
                )
        session.cert = (access.cert, access.key)

    return session


def _identity_url(identity_endpoint: str) -> str:
    url = identity_endpoint.rstrip("/")
    if not url.endswith("/v3"):
        url = f"{url}/v3"
    return f"{url}/auth/tokens"


def _build_auth_body(access) -> Dict[str, Any]:
    """Build the Keystone v3 auth request body."""
    if access.token:
        identity = {"methods": ["token"], "token": {"id": access.token}}
    else:
        user: Dict[str, Any] = {"password": access.password}
        if access.user_id:
            user["id"] = access.user_id
        else:
            user["name"] = access.username
            if access.domain_id:
                user["domain"] = {"id": access.domain_id}
            else:
                user["domain"] = {"name": access.domain_name or "Default"}
        identity = {"methods": ["password"], "password": {"user": user}}

    body: Dict[str, Any] = {"auth": {"identity": identity}}

    if access.tenant_id:
        body["auth"]["scope"] = {"project": {"id": access.tenant_id}}
    elif access.tenant_name:
        project: Dict[str, Any] = {"name": access.tenant_name}
        if access.domain_id:
            project["domain"] = {"id": access.domain_id}
        else:
            project["domain"] = {"name": access.domain_name or "Default"}
        body["auth"]["scope"] = {"project": project}

    return body


def find_image_endpoint(catalog: List[Dict[str, Any]], region: Optional[str], interface: str) -> Optional[str]:
    """Pick the image service URL from a Keystone v3 service catalog."""
    for service in catalog or []:
        if service.get("type") != "image":
            continue
        for endpoint in service.get("endpoints", []):
            if endpoint.get("interface") != interface:
                continue
            if region and region not in (endpoint.get("region_id"), endpoint.get("region")):
                continue
            return endpoint.get("url")
    return None


def authenticate_keystone(session: requests.Session, access) -> KeystoneAccess:
    """Authenticate against Keystone and resolve the image endpoint.

    Args:
        session: Session built by build_session
        access: OpenStackAccess settings

    Returns:
        KeystoneAccess with the scoped token and the image endpoint URL

    Raises:
        AuthenticationError: on any authentication or discovery failure
    """
    url = _identity_url(access.identity_endpoint)
    logger.info(f"Authenticating with OpenStack identity service at {access.identity_endpoint}")

    try:
        response = session.post(url, json=_build_auth_body(access), timeout=access.timeout)
    except requests.RequestException as e:
        raise create_auth_error(access.identity_endpoint, e) from e

    if response.status_code not in (200, 201):
        error = requests.HTTPError(f"identity service returned HTTP {response.status_code}: {response.text[:200]}")
        raise create_auth_error(access.identity_endpoint, error)

    token = response.headers.get("X-Subject-Token")
    if not token:
        raise create_auth_error(access.identity_endpoint, ValueError("response has no X-Subject-Token header"))

    image_endpoint = access.image_endpoint
    if not image_endpoint:
        try:
            catalog = response.json().get("token", {}).get("catalog", [])
        except ValueError as e:
            raise create_auth_error(access.identity_endpoint, e) from e
        image_endpoint = find_image_endpoint(catalog, access.region, access.endpoint_type)
        if not image_endpoint:
            error = LookupError(
                f"no image endpoint in service catalog (region={access.region or 'any'}, "
                f"interface={access.endpoint_type})"
            )
            raise create_auth_error(access.identity_endpoint, error)

    logger.info(f"Using image service endpoint {image_endpoint}")
    return KeystoneAccess(token=token, image_endpoint=image_endpoint)
