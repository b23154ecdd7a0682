"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Shared building blocks of the entity translators.

Translators are pure: they receive a source record plus the canonical entities
it depends on, already resolved through the identity cache, and return a new
canonical entity. The key helpers here are used twice, once by the
orchestrator to know which natural keys to resolve and once by the translator
itself, so both sides agree on sentinel substitution.
"""

from dataclasses import dataclass, field
from typing import Any

from tmsync.domain.models import (
    UNSET,
    Cycle,
    ExecutionStatus,
    Item,
    ItemMetaData,
    Project,
    User,
    Version,
)

METADATA_LENGTH = 100
ITEM_NAME_LENGTH = 1000


class TranslationError(Exception):
    """
    Raised when a source record cannot be translated.

    A missing mandatory record or dependency is a contract violation by the
    caller, never a data quality issue to be papered over with a sentinel.
    """

    def __init__(self, message: str, record: Any = None):
        super().__init__(message)
        self.record = record


@dataclass
class ResolvedDependencies:
    """Canonical entities a translator needs, resolved by the orchestrator."""

    project: Project | None = None
    version: Version | None = None
    versions: list[Version] = field(default_factory=list)
    item: Item | None = None
    cycle: Cycle | None = None
    status: ExecutionStatus | None = None
    executor: User | None = None

    def require(self, name: str, record: Any = None) -> Any:
        value = getattr(self, name)
        if value is None:
            raise TranslationError(f"Dependency '{name}' was not resolved", record)
        return value


def require_record(record: Any, description: str) -> Any:
    if record is None:
        raise TranslationError(f"Cannot translate a missing {description}")
    return record


def is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def or_unset(value: str | None, upper: bool = False) -> str:
    """Return the trimmed value, or the sentinel name when it is blank."""
    if is_blank(value):
        return UNSET
    value = str(value).strip()
    return value.upper() if upper else value


def truncate(value: str | None, length: int) -> str | None:
    return None if value is None else value[:length]


def normalize_folder(folder: str | None) -> str:
    """
    Turn a folder path into a cycle name prefix.

    The folder is trimmed and ends with exactly one ``/``; a blank folder gives
    an empty prefix.
    """
    if is_blank(folder):
        return ""
    return folder.strip().rstrip("/") + "/"


def metadata(name: str, value: Any) -> ItemMetaData:
    """Build an item metadata entry, truncating name and value to the column size."""
    text = None if value is None else str(value)
    return ItemMetaData(name=truncate(name, METADATA_LENGTH), value=truncate(text, METADATA_LENGTH))


# Natural keys of shared dependencies


def project_key(name: str | None) -> str:
    return or_unset(name)


def user_key(name: str | None) -> str:
    return or_unset(name)


def status_key(name: str | None, upper: bool = False) -> str:
    return or_unset(name, upper=upper)

