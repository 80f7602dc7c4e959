"""
Configuration Manager for the image retention step

This module handles loading configuration from config.yaml and the OS_*
environment variables, validating it, and building the immutable settings
object handed to a retention run.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from image_retention.error_utils import ConfigValidationError
from image_retention.executor import DEFAULT_VERIFICATION_PROPERTY

TRUE_VALUES = ("true", "1", "yes", "on")

ENDPOINT_TYPES = ("public", "internal", "admin")


@dataclass(frozen=True)
class OpenStackAccess:
    identity_endpoint: str = ""
    username: Optional[str] = None
    user_id: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    tenant_id: Optional[str] = None
    tenant_name: Optional[str] = None
    domain_id: Optional[str] = None
    domain_name: Optional[str] = None
    region: Optional[str] = None
    endpoint_type: str = "public"
    image_endpoint: Optional[str] = None
    cacert: Optional[str] = None
    cert: Optional[str] = None
    key: Optional[str] = None
    insecure: bool = False
    timeout: int = 60


@dataclass(frozen=True)
class RetrySettings:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True


@dataclass(frozen=True)
class RetentionSettings:
    """Everything one retention run needs, built once per run."""

    identifier: str
    keep_releases: int = 0
    verification_property: str = DEFAULT_VERIFICATION_PROPERTY
    continue_on_error: bool = False
    dry_run: bool = False
    page_size: int = 25
    access: OpenStackAccess = field(default_factory=OpenStackAccess)
    retry: RetrySettings = field(default_factory=RetrySettings)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


class ConfigManager:
    """Manages configuration for the image retention step"""

    # Environment variables, in priority order, for each openstack setting
    OPENSTACK_ENV = {
        "identity_endpoint": ("OS_AUTH_URL",),
        "username": ("OS_USERNAME",),
        "user_id": ("OS_USER_ID",),
        "password": ("OS_PASSWORD",),
        "token": ("OS_TOKEN", "OS_AUTH_TOKEN"),
        "tenant_id": ("OS_PROJECT_ID", "OS_TENANT_ID"),
        "tenant_name": ("OS_PROJECT_NAME", "OS_TENANT_NAME"),
        "domain_id": ("OS_DOMAIN_ID", "OS_USER_DOMAIN_ID"),
        "domain_name": ("OS_DOMAIN_NAME", "OS_USER_DOMAIN_NAME"),
        "region": ("OS_REGION_NAME",),
        "endpoint_type": ("OS_INTERFACE", "OS_ENDPOINT_TYPE"),
        "cacert": ("OS_CACERT",),
        "cert": ("OS_CERT",),
        "key": ("OS_KEY",),
        "insecure": ("OS_INSECURE",),
    }

    # Environment variables overriding the retention section, applied at load time
    RETENTION_ENV = {
        "identifier": "RETENTION_IDENTIFIER",
        "keep_releases": "RETENTION_KEEP_RELEASES",
    }

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()
        self._apply_env_overrides()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "openstack": {
                "identity_endpoint": "",
                "username": None,
                "user_id": None,
                "password": None,
                "token": None,
                "tenant_id": None,
                "tenant_name": None,
                "domain_id": None,
                "domain_name": None,
                "region": None,
                "endpoint_type": "public",
                "image_endpoint": None,
                "cacert": None,
                "cert": None,
                "key": None,
                "insecure": False,
                "timeout": 60,
            },
            "retention": {
                "identifier": "",
                "keep_releases": 0,
                "verification_property": DEFAULT_VERIFICATION_PROPERTY,
                "continue_on_error": False,
                "page_size": 25,
            },
            "retry": {
                "max_retries": 3,
                "initial_delay": 1.0,
                "max_delay": 60.0,
                "exponential_base": 2.0,
                "jitter": True,
            },
            "output": {"output_dir": "reports", "report_file": "retention-report.json"},
        }

        if not os.path.exists(self.config_file):
            logging.info(f"Config file {self.config_file} not found, using defaults")
            return default_config

        try:
            with open(self.config_file, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigValidationError(f"Error loading config file {self.config_file}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigValidationError(f"Config file {self.config_file} must contain a mapping")
        config = self._merge_config(default_config, user_config)
        for section in default_config:
            if not isinstance(config[section], dict):
                raise ConfigValidationError(f"Config section '{section}' in {self.config_file} must be a mapping")
        return config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and value is None:
                # An empty section in the YAML file keeps its defaults
                continue
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Copy RETENTION_* variables into the config so later overrides can replace them"""
        for key, env_var in self.RETENTION_ENV.items():
            value = os.environ.get(env_var)
            if value:
                self.config["retention"][key] = value

    # OpenStack configuration
    def get_openstack_value(self, key: str) -> Any:
        """Get an openstack setting, environment first, then config"""
        for env_var in self.OPENSTACK_ENV.get(key, ()):
            value = os.environ.get(env_var)
            if value:
                return value
        return self.config["openstack"].get(key)

    def get_openstack_timeout(self) -> int:
        """Get the per-request timeout, with type coercion"""
        timeout = self.config["openstack"].get("timeout", 60)
        try:
            return int(timeout)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"openstack.timeout must be an integer, got: {timeout} (type: {type(timeout).__name__})"
            )

    def get_openstack_access(self) -> OpenStackAccess:
        """Build the OpenStackAccess value from config and environment"""
        return OpenStackAccess(
            identity_endpoint=self.get_openstack_value("identity_endpoint") or "",
            username=self.get_openstack_value("username"),
            user_id=self.get_openstack_value("user_id"),
            password=self.get_openstack_value("password"),
            token=self.get_openstack_value("token"),
            tenant_id=self.get_openstack_value("tenant_id"),
            tenant_name=self.get_openstack_value("tenant_name"),
            domain_id=self.get_openstack_value("domain_id"),
            domain_name=self.get_openstack_value("domain_name"),
            region=self.get_openstack_value("region"),
            endpoint_type=self.get_openstack_value("endpoint_type") or "public",
            image_endpoint=self.get_openstack_value("image_endpoint"),
            cacert=self.get_openstack_value("cacert"),
            cert=self.get_openstack_value("cert"),
            key=self.get_openstack_value("key"),
            insecure=_as_bool(self.get_openstack_value("insecure") or False),
            timeout=self.get_openstack_timeout(),
        )

    # Retention configuration
    def get_identifier(self) -> str:
        """Get the image name filter"""
        return self.config["retention"].get("identifier") or ""

    def get_keep_releases(self) -> int:
        """Get the number of images to keep, with type coercion"""
        keep = self.config["retention"].get("keep_releases", 0)
        if isinstance(keep, bool):
            raise ConfigValidationError(f"retention.keep_releases must be an integer, got: {keep}")
        try:
            return int(keep)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retention.keep_releases must be an integer, got: {keep} (type: {type(keep).__name__})"
            )

    def get_verification_property(self) -> str:
        """Get the image property cleared on retained images"""
        return self.config["retention"].get("verification_property") or DEFAULT_VERIFICATION_PROPERTY

    def get_continue_on_error(self) -> bool:
        """Get whether failed image operations should not stop the run"""
        return _as_bool(self.config["retention"].get("continue_on_error", False))

    def get_page_size(self) -> int:
        """Get the listing page size, with type coercion"""
        size = self.config["retention"].get("page_size", 25)
        try:
            return int(size)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retention.page_size must be an integer, got: {size} (type: {type(size).__name__})"
            )

    # Retry configuration
    def get_retry_settings(self) -> RetrySettings:
        """Get retry settings for listing reads, with type coercion"""
        retry = self.config.get("retry", {})
        try:
            return RetrySettings(
                max_retries=int(retry.get("max_retries", 3)),
                initial_delay=float(retry.get("initial_delay", 1.0)),
                max_delay=float(retry.get("max_delay", 60.0)),
                exponential_base=float(retry.get("exponential_base", 2.0)),
                jitter=_as_bool(retry.get("jitter", True)),
            )
        except (ValueError, TypeError) as e:
            raise ConfigValidationError(f"retry settings must be numbers: {e}")

    # Output configuration
    def get_output_dir(self) -> str:
        """Get output directory from config"""
        return self.config["output"]["output_dir"]

    def get_report_path(self) -> str:
        """Resolve the report file under output_dir unless it already has a directory"""
        path = self.config["output"]["report_file"]
        if os.path.isabs(path) or os.path.basename(path) != path:
            return path
        return os.path.join(self.get_output_dir(), path)

    def get_retention_settings(self, dry_run: bool = False) -> RetentionSettings:
        """Build the settings object for one run"""
        return RetentionSettings(
            identifier=self.get_identifier(),
            keep_releases=self.get_keep_releases(),
            verification_property=self.get_verification_property(),
            continue_on_error=self.get_continue_on_error(),
            dry_run=dry_run,
            page_size=self.get_page_size(),
            access=self.get_openstack_access(),
            retry=self.get_retry_settings(),
        )

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        identifier = self.get_identifier()
        if not identifier or not identifier.strip():
            errors.append("retention.identifier is required and cannot be empty")

        try:
            keep_releases = self.get_keep_releases()
        except ConfigValidationError as e:
            errors.append(e.message)
        else:
            if keep_releases < 0:
                errors.append(f"retention.keep_releases must be a non-negative integer, got: {keep_releases}")
            elif keep_releases == 0:
                warnings.append("retention.keep_releases is 0, every matching image will be deleted")

        try:
            page_size = self.get_page_size()
        except ConfigValidationError as e:
            errors.append(e.message)
        else:
            if page_size < 1:
                errors.append(f"retention.page_size must be a positive integer, got: {page_size}")

        try:
            access = self.get_openstack_access()
        except ConfigValidationError as e:
            errors.append(e.message)
        else:
            if not access.identity_endpoint:
                errors.append("openstack.identity_endpoint (OS_AUTH_URL) is required")
            if not access.token:
                if not access.password:
                    errors.append("openstack.password (OS_PASSWORD) or openstack.token (OS_TOKEN) is required")
                if not access.username and not access.user_id:
                    errors.append("openstack.username (OS_USERNAME) or openstack.user_id (OS_USER_ID) is required")
            if access.endpoint_type not in ENDPOINT_TYPES:
                errors.append(
                    f"openstack.endpoint_type must be one of {', '.join(ENDPOINT_TYPES)}, got: {access.endpoint_type}"
                )
            if bool(access.cert) != bool(access.key):
                errors.append("openstack.cert and openstack.key must be set together")
            if access.timeout < 1:
                errors.append(f"openstack.timeout must be a positive integer (seconds), got: {access.timeout}")
            if access.insecure:
                warnings.append("openstack.insecure is enabled, TLS certificates will not be verified")

        try:
            retry = self.get_retry_settings()
        except ConfigValidationError as e:
            errors.append(e.message)
        else:
            if retry.max_retries < 0:
                errors.append(f"retry.max_retries must be a non-negative integer, got: {retry.max_retries}")
            if retry.initial_delay < 0:
                errors.append(f"retry.initial_delay must be a non-negative number, got: {retry.initial_delay}")
            if retry.max_delay < retry.initial_delay:
                errors.append(
                    f"retry.max_delay ({retry.max_delay}) must be >= retry.initial_delay ({retry.initial_delay})"
                )
            if retry.exponential_base < 1.0:
                errors.append(f"retry.exponential_base must be >= 1.0, got: {retry.exponential_base}")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg, errors)
