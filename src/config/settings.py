"""
Configuration loader for the page matcher Lambda.

Builds one immutable Settings record per process from environment variables,
optionally pulling the R2 credentials from AWS Secrets Manager with
exponential backoff, and wires secret redaction into logging.
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from src.utils.logger import add_handler_filter

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""

    pass


DEFAULT_TEMPORARY_STORAGE = "/tmp"  # nosec B108
# Lambda extracts layer contents into /opt
DEFAULT_CHROME_BINARY = "/opt/chromium"
DEFAULT_CHROMEDRIVER = "/opt/chromedriver"
DEFAULT_SIMILARITY_THRESHOLD = 0.95
DEFAULT_SECRETS_REGION = "us-east-1"

# Environment variable NAMES, not values
R2_CREDENTIAL_ENV = {
    "cf_account_id": "CF_ACCOUNT_ID",
    "cf_access_key_id": "CF_ACCESS_KEY_ID",
    "cf_access_key_secret": "CF_ACCESS_KEY_SECRET",  # nosec B105
    "cf_bucket_name": "CF_BUCKET_NAME",
}


class SecretRedactionFilter(logging.Filter):
    """
    Logging filter that redacts secret values from log records.
    Replaces secret substrings with ***REDACTED*** to prevent accidental leakage.
    """

    def __init__(self, secrets: Optional[Dict[str, Any]] = None):
        """
        Initialize filter with secrets to redact.

        Args:
            secrets: Dictionary of secrets to redact (values will be masked)
        """
        super().__init__()
        self.secrets = secrets or {}
        self.redacted_values: set[str] = set()
        if self.secrets:
            self._extract_secret_values(self.secrets)

    def _extract_secret_values(self, obj: Any, max_depth: int = 5) -> None:
        """Recursively extract all secret values from nested structures."""
        if max_depth <= 0:
            return

        if isinstance(obj, dict):
            for value in obj.values():
                self._extract_secret_values(value, max_depth - 1)
        elif isinstance(obj, (list, tuple)):
            for item in obj:
                self._extract_secret_values(item, max_depth - 1)
        elif isinstance(obj, str) and obj and len(obj) > 3:
            # Only redact strings with meaningful length
            self.redacted_values.add(obj)

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter and redact log record."""
        try:
            record.msg = self._redact_string(str(record.msg))
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {k: self._redact_string(str(v)) for k, v in record.args.items()}
                elif isinstance(record.args, (list, tuple)):
                    record.args = tuple(self._redact_string(str(arg)) for arg in record.args)
        except Exception as e:
            logger.warning(f"Error during secret redaction: {e}")
        return True

    def _redact_string(self, text: str) -> str:
        """Redact all secret values from string."""
        for secret in self.redacted_values:
            if secret in text:
                text = text.replace(secret, "***REDACTED***")
        return text


def _read_threshold(raw: Optional[str]) -> float:
    if raw is None or raw == "":
        return DEFAULT_SIMILARITY_THRESHOLD
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"SIMILARITY_THRESHOLD must be a number, got {raw!r}") from e
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"SIMILARITY_THRESHOLD must be within [0, 1], got {value}")
    return value


def _default_chromedriver() -> Optional[str]:
    if os.path.isfile(DEFAULT_CHROMEDRIVER):
        return DEFAULT_CHROMEDRIVER
    return None


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration record.

    Constructed once at cold start and handed to every component; nothing
    below the Lambda handler reads the environment on its own.

    Attributes:
        app_env: Deployment mode. "dev" selects the interactive browser profile
        temporary_storage: Scratch directory for screenshots
        chrome_binary_path: Chromium binary used by the serverless profile
        chromedriver_path: ChromeDriver binary (None lets Selenium Manager resolve it)
        cf_account_id: Cloudflare account owning the R2 bucket
        cf_access_key_id: R2 access key id
        cf_access_key_secret: R2 access key secret
        cf_bucket_name: Bucket receiving screenshots
        similarity_threshold: Scores strictly below this trigger evidence capture
    """

    app_env: str = "production"
    temporary_storage: str = DEFAULT_TEMPORARY_STORAGE
    chrome_binary_path: str = DEFAULT_CHROME_BINARY
    chromedriver_path: Optional[str] = None
    cf_account_id: Optional[str] = None
    cf_access_key_id: Optional[str] = None
    cf_access_key_secret: Optional[str] = field(default=None, repr=False)
    cf_bucket_name: Optional[str] = None
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """
        Build Settings from environment variables.

        When CF_SECRET_ID is set, R2 credentials missing from the environment
        are filled from that Secrets Manager secret.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Raises:
            ConfigurationError: If a value is present but invalid
        """
        env = os.environ if environ is None else environ

        settings = cls(
            app_env=env.get("APP_ENV", "production") or "production",
            temporary_storage=env.get("TEMPORARY_STORAGE") or DEFAULT_TEMPORARY_STORAGE,
            chrome_binary_path=env.get("CHROME_BINARY_PATH") or DEFAULT_CHROME_BINARY,
            chromedriver_path=env.get("CHROMEDRIVER_PATH") or _default_chromedriver(),
            cf_account_id=env.get("CF_ACCOUNT_ID") or None,
            cf_access_key_id=env.get("CF_ACCESS_KEY_ID") or None,
            cf_access_key_secret=env.get("CF_ACCESS_KEY_SECRET") or None,
            cf_bucket_name=env.get("CF_BUCKET_NAME") or None,
            similarity_threshold=_read_threshold(env.get("SIMILARITY_THRESHOLD")),
        )

        secret_id = env.get("CF_SECRET_ID")
        if secret_id and settings.missing_storage_credentials():
            region = env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or DEFAULT_SECRETS_REGION
            settings = settings.with_secret_credentials(
                Settings._get_secret_value(secret_id, region_name=region)
            )

        return settings

    def is_dev(self) -> bool:
        """Check if the interactive (local debugging) browser profile is selected."""
        return self.app_env == "dev"

    def missing_storage_credentials(self) -> list:
        """Return env var names of R2 settings that are not configured."""
        return [env_name for attr, env_name in R2_CREDENTIAL_ENV.items() if not getattr(self, attr)]

    def require_storage_credentials(self) -> None:
        """
        Fail fast when the evidence store cannot be used at all.

        Raises:
            ConfigurationError: Naming the first missing variable
        """
        missing = self.missing_storage_credentials()
        if missing:
            raise ConfigurationError(f"Missing {missing[0]} env. var.")

    def with_secret_credentials(self, secret: Dict[str, Any]) -> "Settings":
        """Return a copy with R2 credentials filled from a secret payload."""
        updates = {
            attr: secret.get(attr) or secret.get(env_name)
            for attr, env_name in R2_CREDENTIAL_ENV.items()
            if not getattr(self, attr) and (secret.get(attr) or secret.get(env_name))
        }
        return replace(self, **updates)

    def storage_secrets(self) -> Dict[str, str]:
        """Credential values that must never appear in logs."""
        return {
            "cf_access_key_id": self.cf_access_key_id or "",
            "cf_access_key_secret": self.cf_access_key_secret or "",
        }

    @staticmethod
    def _get_secret_value(
        secret_id: str,
        region_name: str = DEFAULT_SECRETS_REGION,
        max_retries: int = 3,
        base_wait: float = 1.0,
    ) -> Dict[str, Any]:
        """
        Fetch secret from Secrets Manager with exponential backoff.

        Args:
            secret_id: Secret identifier in Secrets Manager
            region_name: AWS region holding the secret
            max_retries: Maximum number of retry attempts
            base_wait: Base wait time in seconds for exponential backoff

        Returns:
            Parsed secret JSON as dictionary

        Raises:
            ConfigurationError: If secret cannot be retrieved after retries
        """
        client = boto3.client("secretsmanager", region_name=region_name)

        for attempt in range(max_retries):
            try:
                response = client.get_secret_value(SecretId=secret_id)
                secret_string = response.get("SecretString")
                if not secret_string:
                    raise ConfigurationError(f"Secret {secret_id} has empty value")
                return json.loads(secret_string)
            except ClientError as e:
                error_code = e.response["Error"]["Code"]
                if error_code == "ResourceNotFoundException":
                    raise ConfigurationError(
                        f"Secret '{secret_id}' not found in Secrets Manager. "
                        f"Please verify the secret exists in region {region_name}"
                    ) from e
                elif error_code in ["AccessDeniedException", "UnauthorizedOperation"]:
                    raise ConfigurationError(
                        f"Access denied to secret '{secret_id}'. "
                        f"Verify Lambda execution role has secretsmanager:GetSecretValue permission"
                    ) from e
                elif attempt < max_retries - 1:
                    wait_time = base_wait * (2**attempt)
                    logger.warning(
                        f"Transient error fetching secret {secret_id}: {error_code}. "
                        f"Retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(wait_time)
                else:
                    raise ConfigurationError(
                        f"Failed to retrieve secret '{secret_id}' after {max_retries} attempts: {error_code}"
                    ) from e
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Secret '{secret_id}' contains invalid JSON: {str(e)}") from e

        raise ConfigurationError(
            f"Failed to retrieve secret '{secret_id}' - exhausted all retry attempts"
        )


def setup_logging_redaction(settings: Settings) -> None:
    """
    Redact the R2 credentials from every log record.

    The filter goes on the root logger and its handlers, and on the handler
    of every StructuredLogger, present or future.
    """
    root = logging.getLogger()
    redaction_filter = SecretRedactionFilter(settings.storage_secrets())
    for target in [root, *root.handlers]:
        for existing in list(target.filters):
            if isinstance(existing, SecretRedactionFilter):
                target.removeFilter(existing)
        target.addFilter(redaction_filter)
    add_handler_filter(redaction_filter)
