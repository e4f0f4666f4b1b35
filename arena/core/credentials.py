"""Credential resolution against a secret-lookup collaborator."""
from __future__ import annotations

from collections.abc import Mapping
import os
from pathlib import Path
from typing import Protocol

from dotenv import dotenv_values

from .errors import CredentialUnavailable
from .models import ProviderRecord

__all__ = [
    "SecretStore",
    "EnvSecretStore",
    "MappingSecretStore",
    "resolve_credential",
]


class SecretStore(Protocol):
    def get_secret(self, ref: str) -> str:
        """Return the secret stored under ``ref`` or raise ``KeyError``."""


class MappingSecretStore:
    """In-memory secret store."""

    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def set_secret(self, ref: str, value: str) -> None:
        self._secrets[ref] = value

    def get_secret(self, ref: str) -> str:
        return self._secrets[ref]


class EnvSecretStore:
    """Look secrets up in the process environment, then an optional ``.env`` file.

    The environment always wins over the file, matching ``load_dotenv(override=False)``.
    """

    def __init__(
        self,
        env_file: str | Path | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._environ = environ if environ is not None else os.environ
        self._file_values: dict[str, str] = {}
        if env_file is not None and Path(env_file).exists():
            self._file_values = {
                key: value
                for key, value in dotenv_values(env_file).items()
                if value is not None
            }

    def get_secret(self, ref: str) -> str:
        name = ref.strip()
        value = (self._environ.get(name) or self._file_values.get(name) or "").strip()
        if not value:
            raise KeyError(name)
        return value


def resolve_credential(record: ProviderRecord, store: SecretStore) -> str:
    """Resolve the API key of ``record``.

    ``keychain`` looks ``api_key_ref`` up in ``store``; ``direct`` uses the
    embedded key; anything else (e.g. local Ollama) resolves to ``""``.
    """

    source = (record.api_key_source or "none").strip().lower()
    if source == "keychain":
        ref = (record.api_key_ref or "").strip()
        if not ref:
            raise CredentialUnavailable(
                f"{record.name}: api_key_ref is not configured"
            )
        try:
            secret = store.get_secret(ref)
        except KeyError:
            raise CredentialUnavailable(
                f"{record.name}: API key not found for {ref}"
            ) from None
        except Exception as exc:  # noqa: BLE001 - store errors are normalized
            raise CredentialUnavailable(f"{record.name}: {exc}") from exc
        if not secret:
            raise CredentialUnavailable(f"{record.name}: API key not found for {ref}")
        return secret
    if source == "direct":
        return (record.api_key or "").strip()
    return ""
