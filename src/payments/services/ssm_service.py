"""SSM Parameter Store service for secure secret retrieval.

Used at startup to resolve the Stripe API key and webhook signing secret
when they are not supplied directly in the environment.
"""

import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""

    pass


class SSMService:
    """Service for retrieving secrets from AWS SSM Parameter Store.

    Features:
    - Retrieves SecureString parameters with automatic decryption
    - Per-instance caching to avoid repeated API calls

    Usage:
        ssm = SSMService(region_name="eu-west-1")
        stripe_key = ssm.get_parameter("/telehealth/dev/stripe/secret_key")
    """

    def __init__(self, region_name: str | None = None) -> None:
        self._client = boto3.client("ssm", region_name=region_name)
        self._cache: dict[str, str] = {}

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a parameter value from SSM Parameter Store.

        Args:
            name: Full parameter path (e.g., "/telehealth/dev/stripe/secret_key")
            use_cache: Whether to use cached value if available (default: True)

        Returns:
            The decrypted parameter value.

        Raises:
            SSMServiceError: If parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            logger.debug("SSM cache hit for %s", name)
            return self._cache[name]

        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._client.get_parameter(Name=name, WithDecryption=True)
            value: str = response["Parameter"]["Value"]
            self._cache[name] = value
            return value

        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameter: {name}. "
                    "Check IAM permissions for ssm:GetParameter."
                ) from e
            raise SSMServiceError(
                f"Failed to retrieve SSM parameter {name}: {e}"
            ) from e
        except BotoCoreError as e:
            raise SSMServiceError(f"Failed to retrieve SSM parameter {name}: {e}") from e

    def clear_cache(self) -> None:
        """Clear all cached parameters."""
        self._cache.clear()
        logger.info("SSM parameter cache cleared")
