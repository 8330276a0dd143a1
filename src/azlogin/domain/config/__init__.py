"""Configuration models with Pydantic validation."""

from azlogin.domain.config.login import LoginOptions
from azlogin.domain.config.retry import RetryPolicy

__all__ = [
    "LoginOptions",
    "RetryPolicy",
]
