"""
Authentication for the OpenStack image service.

This module provides the session and token plumbing used to build a
ready-to-use catalog client:
- TLS configuration (custom CA, client certificates, insecure mode)
- Keystone v3 password and token authentication
- Image service endpoint discovery from the service catalog
"""

from image_retention.auth.keystone import KeystoneAccess, authenticate_keystone, build_session

__all__ = [
    "KeystoneAccess",
    "authenticate_keystone",
    "build_session",
]
