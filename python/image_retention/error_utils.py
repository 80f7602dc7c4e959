"""
Error types and actionable error messages for the retention run.

Every failure surfaced to the caller is an ActionableError carrying a
category, suggested fixes and the context needed to tell which image and
which operation caused it.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    AUTHENTICATION = "authentication"
    CATALOG = "catalog"
    MUTATION = "mutation"
    CONFIGURATION = "configuration"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class AuthenticationError(ActionableError):
    """The catalog client could not be established."""

    def __init__(self, message: str, suggestions: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.AUTHENTICATION, suggestions, details)


class CatalogError(ActionableError):
    """Listing failed; no mutation has been attempted."""

    def __init__(self, message: str, suggestions: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCategory.CATALOG, suggestions, details)


class MutationError(ActionableError):
    """A metadata patch or delete failed; the catalog is left partially processed."""

    def __init__(self, message: str, operation: str, image_id: str, image_name: str,
                 report=None, failures: Optional[List[Dict[str, Any]]] = None,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.image_id = image_id
        self.image_name = image_name
        self.report = report
        self.failures = failures or []
        super().__init__(message, ErrorCategory.MUTATION, suggestions, details)


class RunCancelledError(ActionableError):
    """The caller cancelled the run before it completed."""

    def __init__(self, stage: str, report=None):
        self.stage = stage
        self.report = report
        super().__init__(
            f"Retention run cancelled during {stage}",
            ErrorCategory.CANCELLED,
            ["Re-run the retention step once the pipeline is restarted; already applied changes are kept"],
            {"stage": stage},
        )


class ConfigValidationError(ActionableError):
    """Raised when configuration validation fails"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(
            message,
            ErrorCategory.CONFIGURATION,
            ["Check config.yaml and the OS_* environment variables",
             "Compare against config-example.yaml for the expected format"],
        )


class CatalogRequestError(Exception):
    """A single catalog HTTP request failed."""

    def __init__(self, method: str, url: str, status_code: Optional[int] = None, body: str = ""):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        status = f"HTTP {status_code}" if status_code is not None else "no response"
        detail = f": {body[:200]}" if body else ""
        super().__init__(f"{method} {url} failed ({status}){detail}")


def _status_suggestions(error: Exception) -> List[str]:
    status = getattr(error, "status_code", None)
    if status in (401, 403):
        return ["Verify the account has rights on the image project",
                "Check the Keystone token has not expired"]
    if status == 404:
        return ["The image may have been removed concurrently; re-run to pick up the current catalog"]
    if status is not None and status >= 500:
        return ["The image service is failing; check Glance API logs and re-run"]
    return ["Check network connectivity to the image service"]


def create_auth_error(identity_endpoint: str, error: Exception) -> AuthenticationError:
    """Create actionable error for Keystone authentication failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the identity endpoint is correct: {identity_endpoint}",
        "Check OS_USERNAME/OS_PASSWORD (or OS_TOKEN) are set correctly",
        "Verify the project and domain names or ids match the account",
    ]

    if "certificate" in error_str or "ssl" in error_str:
        suggestions.insert(0, "Set openstack.cacert to the CA bundle that signed the endpoint certificate")
        suggestions.insert(1, "Use openstack.insecure only for testing")

    if "endpoint" in error_str or "catalog" in error_str:
        suggestions.insert(0, "Check openstack.region and openstack.endpoint_type against the service catalog")

    return AuthenticationError(
        f"Failed to authenticate with OpenStack at {identity_endpoint}",
        suggestions=suggestions,
        details={
            "identity_endpoint": identity_endpoint,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_catalog_error(name: str, page: int, error: Exception) -> CatalogError:
    """Create actionable error for image listing failures"""
    suggestions = _status_suggestions(error)
    suggestions.append("No image has been modified; it is safe to re-run")

    return CatalogError(
        f"Failed to list images named '{name}' (page {page})",
        suggestions=suggestions,
        details={
            "identifier": name,
            "page": page,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_mutation_error(operation: str, image, error: Exception, report=None) -> MutationError:
    """Create actionable error for a failed metadata patch or delete"""
    suggestions = _status_suggestions(error)
    suggestions.append("Images processed before this one keep their changes; re-running is safe")

    return MutationError(
        f"Failed to {operation} image {image.name} ({image.id})",
        operation=operation,
        image_id=image.id,
        image_name=image.name,
        report=report,
        failures=[{"operation": operation, "image_id": image.id, "image_name": image.name,
                   "error": str(error)}],
        suggestions=suggestions,
        details={
            "operation": operation,
            "image_id": image.id,
            "image_name": image.name,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_aggregate_mutation_error(failures: List[Dict[str, Any]], report=None) -> MutationError:
    """Create one error for every failure collected in continue-on-error mode"""
    first = failures[0]
    return MutationError(
        f"{len(failures)} image operation(s) failed; first: {first['operation']} "
        f"{first['image_name']} ({first['image_id']})",
        operation=first["operation"],
        image_id=first["image_id"],
        image_name=first["image_name"],
        report=report,
        failures=failures,
        suggestions=["Inspect each failure below, fix the cause and re-run"],
        details={f"{f['operation']} {f['image_id']}": f["error"] for f in failures},
    )
