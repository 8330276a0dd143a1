"""azure-login: Azure authentication for CI via GitHub Actions OIDC."""

__version__ = "0.1.0"
