"""Token persistence between CLI invocations"""

import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Union

from azlogin.domain.models.token import SavedToken, TokenResponse

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = ".azure"
TOKEN_FILE = "azure-login-token.json"


class TokenStoreError(Exception):
    """Token file could not be read or written."""

    pass


class NotAuthenticatedError(TokenStoreError):
    """No token has been saved yet."""

    pass


def default_config_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """AZURE_CONFIG_DIR, or ~/.azure (./.azure when there is no home directory)"""
    environ = os.environ if environ is None else environ
    configured = environ.get("AZURE_CONFIG_DIR")
    if configured:
        return Path(configured)
    try:
        return Path.home() / DEFAULT_CONFIG_DIR
    except RuntimeError:
        return Path(DEFAULT_CONFIG_DIR)


class TokenStore:
    """Stores the exchanged Azure token as JSON with owner-only permissions"""

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        self.config_dir = Path(config_dir) if config_dir is not None else default_config_dir()

    @property
    def token_path(self) -> Path:
        return self.config_dir / TOKEN_FILE

    def save(self, token: Union[TokenResponse, SavedToken]) -> None:
        """Atomically write the token (temp file + rename)

        Raises:
            TokenStoreError: If the directory or file cannot be written
        """
        if isinstance(token, TokenResponse):
            token = SavedToken.from_response(token)

        try:
            self.config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise TokenStoreError(f"failed to create config directory: {e}") from e

        tmp_path = self.token_path.with_name(TOKEN_FILE + ".tmp")
        data = json.dumps(token.to_dict())
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise TokenStoreError(f"failed to write token file: {e}") from e

        try:
            os.replace(tmp_path, self.token_path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise TokenStoreError(f"failed to save token file: {e}") from e

        logger.debug(f"Saved token to {self.token_path}")

    def load(self) -> SavedToken:
        """Load the saved token

        Raises:
            NotAuthenticatedError: If no token file exists
            TokenStoreError: If the file cannot be read or parsed
        """
        try:
            raw = self.token_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise NotAuthenticatedError("not authenticated") from e
        except OSError as e:
            raise TokenStoreError(f"failed to read token file: {e}") from e

        try:
            return SavedToken.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise TokenStoreError(f"failed to parse token file: {e}") from e

    def delete(self) -> None:
        """Remove the saved token; a missing file is not an error"""
        try:
            self.token_path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise TokenStoreError(f"failed to delete token file: {e}") from e
        logger.debug(f"Deleted token file {self.token_path}")
