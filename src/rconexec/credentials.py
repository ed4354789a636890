"""Resolve RCON passwords just in time.

Two providers are available: passwords stored encrypted in the config file
(PyNaCl SecretBox, decrypted with an operator-held key from the
environment) and passwords stored in 1Password, fetched with the op CLI.
Neither provider caches the plaintext; every call resolves it afresh.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import shutil
import subprocess
from typing import TYPE_CHECKING, Protocol

from nacl.encoding import Base64Encoder
from nacl.exceptions import CryptoError
from nacl.secret import SecretBox

from rconexec.errors import CredentialUnavailable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from rconexec.config import AppConfig, CredentialConfig

log = logging.getLogger(__name__)


class SecretProvider(Protocol):
    """Resolves the plaintext RCON password for a server."""

    def resolve(self, server_name: str) -> str:
        """Return the password or raise CredentialUnavailable."""
        ...


def encrypt_secret(key: str, plaintext: str) -> str:
    """Encrypt a password for the config file.

    Args:
        key: Base64-encoded 32-byte operator key.
        plaintext: The RCON password.

    Returns:
        Base64 ciphertext with the nonce prefixed.
    """
    box = SecretBox(_decode_key(key))
    return box.encrypt(plaintext.encode("utf-8"), encoder=Base64Encoder).decode(
        "ascii"
    )


def generate_key() -> str:
    """Generate a new base64-encoded operator key."""
    return base64.b64encode(os.urandom(SecretBox.KEY_SIZE)).decode("ascii")


def _decode_key(key: str) -> bytes:
    try:
        raw = base64.b64decode(key, validate=True)
    except binascii.Error as e:
        msg = "Encryption key is not valid base64"
        raise CredentialUnavailable(msg) from e
    if len(raw) != SecretBox.KEY_SIZE:
        msg = f"Encryption key must be {SecretBox.KEY_SIZE} bytes, got {len(raw)}"
        raise CredentialUnavailable(msg)
    return raw


class SecretBoxSecretProvider:
    """Decrypts passwords stored as SecretBox ciphertext in the config."""

    def __init__(
        self,
        config: AppConfig,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._environ = os.environ if environ is None else environ

    def resolve(self, server_name: str) -> str:
        entry = self._config.servers.get(server_name)
        if entry is None or not entry.encrypted_password:
            msg = f"No encrypted password stored for server '{server_name}'"
            raise CredentialUnavailable(msg)

        key_env = self._config.secrets.key_env
        key = self._environ.get(key_env)
        if not key:
            msg = f"Encryption key is not set (expected in ${key_env})"
            raise CredentialUnavailable(msg)

        box = SecretBox(_decode_key(key))
        try:
            plaintext = box.decrypt(
                entry.encrypted_password.encode("ascii"), encoder=Base64Encoder
            ).decode("utf-8")
        except (CryptoError, ValueError) as e:
            msg = f"Failed to decrypt password for server '{server_name}'"
            raise CredentialUnavailable(msg) from e

        log.debug("Decrypted password for server %s", server_name)
        return plaintext


class OnePasswordSecretProvider:
    """Fetches passwords from 1Password using per-server credential references.

    Each server's ``[servers.<name>.credentials]`` table names a vault, item
    and field. They are combined into an ``op://`` secret reference and read
    with ``op read``, which needs an unlocked op session in the environment.
    """

    def __init__(self, config: AppConfig, *, op_timeout: float = 30.0) -> None:
        self._config = config
        self._op_timeout = op_timeout

    def resolve(self, server_name: str) -> str:
        entry = self._config.servers.get(server_name)
        if entry is None or entry.credentials is None:
            msg = f"No 1Password reference configured for server '{server_name}'"
            raise CredentialUnavailable(msg)

        op_path = shutil.which("op")
        if not op_path:
            msg = "1Password CLI (op) is not installed or not in PATH"
            raise CredentialUnavailable(msg)

        reference = _secret_reference(entry.credentials)
        try:
            result = subprocess.run(  # noqa: S603
                [op_path, "read", "--no-newline", reference],
                capture_output=True,
                text=True,
                timeout=self._op_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            msg = f"op read for server '{server_name}' timed out"
            raise CredentialUnavailable(msg) from e

        if result.returncode != 0:
            msg = (
                f"op read failed for server '{server_name}'"
                f" ({reference}): {result.stderr.strip()}"
            )
            raise CredentialUnavailable(msg)
        if not result.stdout:
            msg = f"1Password returned an empty password for {reference}"
            raise CredentialUnavailable(msg)

        log.debug("Read password for server %s from 1Password", server_name)
        return result.stdout


def _secret_reference(creds: CredentialConfig) -> str:
    return f"op://{creds.vault}/{creds.item}/{creds.field}"


def build_secret_provider(config: AppConfig) -> SecretProvider:
    """Return the provider selected by the [secrets] config section."""
    provider = config.secrets.provider
    if provider == "secretbox":
        return SecretBoxSecretProvider(config)
    if provider == "1password":
        return OnePasswordSecretProvider(config)
    msg = f"Unknown secret provider: {provider}"
    raise ValueError(msg)
