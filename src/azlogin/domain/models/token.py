"""Token models - access tokens issued by Azure AD"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Azure CLI compatible timestamp formats
ACCESS_TOKEN_EXPIRY_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
EXEC_CREDENTIAL_EXPIRY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass
class TokenResponse:
    """Successful response from the Azure AD token endpoint"""

    access_token: str
    token_type: str
    expires_in: int
    expires_on: datetime  # UTC, computed at exchange time
    tenant_id: str = ""
    client_id: str = ""
    subscription_id: str = ""
    ext_expires_in: Optional[int] = None
    refresh_token: Optional[str] = None


@dataclass
class SavedToken:
    """Token persisted between CLI invocations"""

    access_token: str
    token_type: str
    expires_on: datetime
    tenant_id: str = ""
    client_id: str = ""
    subscription_id: str = ""

    @classmethod
    def from_response(cls, token: TokenResponse) -> "SavedToken":
        return cls(
            access_token=token.access_token,
            token_type=token.token_type,
            expires_on=token.expires_on,
            tenant_id=token.tenant_id,
            client_id=token.client_id,
            subscription_id=token.subscription_id,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedToken":
        """Build from the JSON document written by to_dict()

        Raises:
            KeyError: If a required field is missing
            ValueError: If expires_on is not an ISO 8601 timestamp
        """
        expires_on = datetime.fromisoformat(str(data["expires_on"]).replace("Z", "+00:00"))
        if expires_on.tzinfo is None:
            expires_on = expires_on.replace(tzinfo=timezone.utc)
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            expires_on=expires_on.astimezone(timezone.utc),
            tenant_id=data.get("tenant_id", ""),
            client_id=data.get("client_id", ""),
            subscription_id=data.get("subscription_id", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["expires_on"] = self.expires_on.astimezone(timezone.utc).isoformat()
        return data

    def expires_within(self, seconds: float, now: Optional[datetime] = None) -> bool:
        """Check if the token is expired or expires within the given window"""
        now = now or datetime.now(timezone.utc)
        return (self.expires_on - now).total_seconds() < seconds
