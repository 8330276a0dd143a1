"""Retry policy model."""

import os
import re
from typing import Callable, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# ASCII only, no surrounding whitespace or digit separators
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_FLOAT_PATTERN = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


def _parse_int(raw: str) -> int:
    if not _INT_PATTERN.fullmatch(raw):
        raise ValueError(f"invalid integer: {raw!r}")
    return int(raw)


def _parse_float(raw: str) -> float:
    if not _FLOAT_PATTERN.fullmatch(raw):
        raise ValueError(f"invalid number: {raw!r}")
    return float(raw)


# field name -> (environment variable, parser)
_ENV_FIELDS: Dict[str, Tuple[str, Callable[[str], object]]] = {
    "max_attempts": ("AZURE_LOGIN_RETRY_MAX_ATTEMPTS", _parse_int),
    "initial_delay": ("AZURE_LOGIN_RETRY_INITIAL_DELAY", _parse_int),
    "max_delay": ("AZURE_LOGIN_RETRY_MAX_DELAY", _parse_int),
    "backoff_multiplier": ("AZURE_LOGIN_RETRY_BACKOFF_MULTIPLIER", _parse_float),
}

# Environment values are whole seconds, so delays below one second are only
# reachable by constructing a policy directly.
_ENV_MIN_DELAY = 1


class RetryPolicy(BaseModel):
    """Configuration for retrying transient network failures.

    Attributes:
        max_attempts: Total attempts, including the first one
        initial_delay: Wait before the second attempt, in seconds
        max_delay: Upper bound for any single wait, in seconds
        backoff_multiplier: Growth factor applied after each wait
    """

    max_attempts: int = Field(3, ge=1, le=10)
    initial_delay: float = Field(1.0, gt=0.0, le=60.0)
    max_delay: float = Field(30.0, gt=0.0, le=300.0)
    backoff_multiplier: float = Field(2.0, ge=1.0, le=5.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RetryPolicy":
        """Load a policy from a snapshot of the environment.

        Each AZURE_LOGIN_RETRY_* variable is validated on its own. Values that
        are empty, not plain ASCII numbers, or out of range keep the default.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Validated RetryPolicy
        """
        environ = os.environ if environ is None else environ
        values = cls().model_dump()

        for field, (variable, parse) in _ENV_FIELDS.items():
            raw = environ.get(variable, "")
            if not raw:
                continue
            try:
                value = parse(raw)
                if field in ("initial_delay", "max_delay") and value < _ENV_MIN_DELAY:
                    continue
                # ValidationError is a ValueError subclass
                cls.model_validate({**values, field: value})
            except ValueError:
                continue
            values[field] = value

        return cls(**values)
