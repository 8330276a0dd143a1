"""Login options model."""

import os
import re
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

_UUID_HINT = "must be a valid UUID/GUID format (e.g., 12345678-1234-1234-1234-123456789abc)"


class ConfigurationError(Exception):
    """Configuration validation error."""

    pass


def is_valid_uuid(value: str) -> bool:
    """Check if a string is an Azure UUID/GUID (8-4-4-4-12 hex digits)"""
    return bool(UUID_PATTERN.fullmatch(value))


def _option_name(field_name: str) -> str:
    return field_name.replace("_", "-")


def _first_error(error: ValidationError) -> str:
    """User-facing message for the first failed field"""
    detail = error.errors()[0]
    cause = detail.get("ctx", {}).get("error")
    if isinstance(cause, ValueError):
        return str(cause)
    field = _option_name(str(detail["loc"][0])) if detail.get("loc") else "login options"
    return f"{field}: {detail['msg']}"


class LoginOptions(BaseModel):
    """Resolved options for a single `login` invocation.

    Attributes:
        client_id: Azure application (client) ID
        tenant_id: Azure AD tenant ID
        subscription_id: Azure subscription ID (empty when not configured)
    """

    client_id: str
    tenant_id: str
    subscription_id: str = ""

    model_config = ConfigDict(frozen=True)

    @field_validator("client_id", "tenant_id")
    @classmethod
    def _validate_required_id(cls, value: str, info: ValidationInfo) -> str:
        name = _option_name(info.field_name)
        if not value:
            raise ValueError(f"{name} is required")
        if not is_valid_uuid(value):
            raise ValueError(f"{name} {_UUID_HINT}")
        return value

    @field_validator("subscription_id")
    @classmethod
    def _validate_subscription_id(cls, value: str) -> str:
        if value and not is_valid_uuid(value):
            raise ValueError(f"subscription-id {_UUID_HINT}")
        return value

    @classmethod
    def resolve(
        cls,
        client_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        allow_no_subscription: bool = False,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "LoginOptions":
        """Combine CLI flags with AZURE_* environment defaults and validate them.

        Flags take precedence over AZURE_CLIENT_ID, AZURE_TENANT_ID and
        AZURE_SUBSCRIPTION_ID.

        Raises:
            ConfigurationError: If a required ID is missing or malformed
        """
        environ = os.environ if environ is None else environ
        try:
            options = cls(
                client_id=client_id or environ.get("AZURE_CLIENT_ID", ""),
                tenant_id=tenant_id or environ.get("AZURE_TENANT_ID", ""),
                subscription_id=subscription_id or environ.get("AZURE_SUBSCRIPTION_ID", ""),
            )
        except ValidationError as e:
            # errors are reported in field order: client, tenant, subscription
            raise ConfigurationError(_first_error(e)) from e

        if not options.subscription_id and not allow_no_subscription:
            raise ConfigurationError("subscription-id is required (or use --allow-no-subscriptions)")
        return options
