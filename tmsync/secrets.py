"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""Secrets providers used to obtain source system credentials."""

import os
from typing import Protocol, runtime_checkable


@runtime_checkable
class SecretsProvider(Protocol):
    """Anything that can resolve a secret by key."""

    def get_value(self, key: str) -> str | None: ...


class EnvSecretsProvider:
    """
    Reads secrets from environment variables.

    ``get_value("scale_api_token")`` looks up ``TMSYNC_SCALE_API_TOKEN``.
    """

    def __init__(self, prefix: str = "TMSYNC_"):
        self.prefix = prefix

    def get_value(self, key: str) -> str | None:
        return os.environ.get(f"{self.prefix}{key.upper()}")


class StaticSecretsProvider:
    """Serves secrets from a mapping, for tests and embedding."""

    def __init__(self, secrets: dict[str, str]):
        self._secrets = dict(secrets)

    def get_value(self, key: str) -> str | None:
        return self._secrets.get(key)
