"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Canonical entity models.

These pydantic models are what translators produce and what the canonical store
accepts for merging. They mirror the ORM tables in ``tmsync.core.db_models`` but
carry foreign keys as plain ids so they can be built without a database session.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

UNSET = "UNSET"

T = TypeVar("T")


class EntityKind(str, Enum):
    """Kinds of canonical entities, listed in dependency order."""

    PROJECT = "project"
    VERSION = "version"
    ITEM = "item"
    CYCLE = "cycle"
    USER = "user"
    EXECUTION_STATUS = "execution_status"
    EXECUTION = "execution"


class CanonicalModel(BaseModel):
    model_config = ConfigDict(validate_assignment=True)


class Project(CanonicalModel):
    id: int | None = None
    name: str


class Version(CanonicalModel):
    id: int | None = None
    project_id: int
    name: str
    start_date: datetime | None = None
    end_date: datetime | None = None


class ItemMetaData(CanonicalModel):
    name: str
    value: str | None = None


class Item(CanonicalModel):
    """A test case (Scale) or an issue (Jira)."""

    id: str
    name: str | None = None
    project_id: int | None = None
    type: str | None = None
    status: str | None = None
    priority: str | None = None
    created: datetime | None = None
    updated: datetime | None = None
    version_ids: list[int] = Field(default_factory=list)
    meta_data: list[ItemMetaData] = Field(default_factory=list)


class Cycle(CanonicalModel):
    id: str
    version_id: int | None = None
    name: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class User(CanonicalModel):
    id: int | None = None
    name: str


class ExecutionStatus(CanonicalModel):
    id: int | None = None
    name: str


class Execution(CanonicalModel):
    id: str
    item_id: str | None = None
    cycle_id: str | None = None
    status_id: int | None = None
    executor_id: int | None = None
    created: datetime | None = None
    executed: datetime | None = None


ENTITY_TYPES: dict[EntityKind, type[CanonicalModel]] = {
    EntityKind.PROJECT: Project,
    EntityKind.VERSION: Version,
    EntityKind.ITEM: Item,
    EntityKind.CYCLE: Cycle,
    EntityKind.USER: User,
    EntityKind.EXECUTION_STATUS: ExecutionStatus,
    EntityKind.EXECUTION: Execution,
}

# Kinds identified by a name and an integer surrogate id.
NAMED_KINDS = frozenset({EntityKind.PROJECT, EntityKind.USER, EntityKind.EXECUTION_STATUS})


def kind_of(entity: CanonicalModel) -> EntityKind:
    """Return the kind of a canonical entity."""
    for kind, entity_type in ENTITY_TYPES.items():
        if type(entity) is entity_type:
            return kind
    raise TypeError(f"Not a canonical entity: {type(entity).__name__}")


def natural_key(entity: CanonicalModel) -> Any:
    """
    Return the natural key of an entity.

    Projects, users and execution statuses are keyed by name, versions by
    ``(project_id, name)`` and everything else by its external id.
    """
    kind = kind_of(entity)
    if kind in NAMED_KINDS:
        return entity.name
    if kind == EntityKind.VERSION:
        return (entity.project_id, entity.name)
    return entity.id


@dataclass(frozen=True)
class Found(Generic[T]):
    """A successful lookup."""

    value: T


@dataclass(frozen=True)
class NotFound:
    """
    A failed lookup.

    ``reason`` is ``"missing"`` when the entity does not exist and
    ``"exhausted"`` when every attempt to read it failed.
    """

    key: Any = None
    reason: str = "missing"


Resolution = Found | NotFound
