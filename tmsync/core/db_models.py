"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
SQLAlchemy ORM models for the canonical store.

This module defines the canonical reporting schema that every source system is
merged into. Natural keys carry unique constraints so that concurrent
find-or-create calls converge on a single row. Columns other than the key are
nullable because rows may be created from their key alone and filled in by a
later merge.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

NAME_LENGTH = 255
ITEM_NAME_LENGTH = 1000
METADATA_LENGTH = 100
KEY_LENGTH = 100


item_version_association = Table(
    "item_version",
    Base.metadata,
    Column(
        "item_id",
        String(KEY_LENGTH),
        ForeignKey("item.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("version_id", Integer, ForeignKey("version.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_item_version_version", "version_id"),
)


class Project(Base):
    """Project entity model."""

    __tablename__ = "project"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(NAME_LENGTH), nullable=False, unique=True)

    versions = relationship("Version", back_populates="project")
    items = relationship("Item", back_populates="project")

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}')>"


class Version(Base):
    """Version (release) of a project."""

    __tablename__ = "version"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("project.id"), nullable=False)
    name = Column(String(NAME_LENGTH), nullable=False)
    start_date = Column(DateTime)
    end_date = Column(DateTime)

    project = relationship("Project", back_populates="versions")
    cycles = relationship("Cycle", back_populates="version")

    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_version_project_name"),)

    def __repr__(self):
        return f"<Version(id={self.id}, project_id={self.project_id}, name='{self.name}')>"


class Item(Base):
    """Test case or issue, keyed by its external key."""

    __tablename__ = "item"

    id = Column(String(KEY_LENGTH), primary_key=True)
    name = Column(String(ITEM_NAME_LENGTH))
    project_id = Column(Integer, ForeignKey("project.id"))
    type = Column(String(NAME_LENGTH))
    status = Column(String(NAME_LENGTH))
    priority = Column(String(NAME_LENGTH))
    created = Column(DateTime)
    updated = Column(DateTime)

    project = relationship("Project", back_populates="items")
    versions = relationship("Version", secondary=item_version_association, order_by="Version.id")
    meta_data = relationship(
        "ItemMetaData",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="ItemMetaData.id",
    )
    executions = relationship("Execution", back_populates="item")

    __table_args__ = (Index("idx_item_project", "project_id"),)

    def __repr__(self):
        return f"<Item(id='{self.id}', type='{self.type}', status='{self.status}')>"


class ItemMetaData(Base):
    """Name/value pair attached to an item (component, label, custom field, ...)."""

    __tablename__ = "item_metadata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(String(KEY_LENGTH), ForeignKey("item.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(METADATA_LENGTH), nullable=False)
    value = Column(String(METADATA_LENGTH))

    item = relationship("Item", back_populates="meta_data")

    __table_args__ = (Index("idx_item_metadata_item", "item_id"),)

    def __repr__(self):
        return f"<ItemMetaData(item_id='{self.item_id}', name='{self.name}')>"


class Cycle(Base):
    """Test cycle (Scale test run, ZAPI cycle)."""

    __tablename__ = "cycle"

    id = Column(String(KEY_LENGTH), primary_key=True)
    version_id = Column(Integer, ForeignKey("version.id"))
    name = Column(String(ITEM_NAME_LENGTH))
    start_date = Column(DateTime)
    end_date = Column(DateTime)

    version = relationship("Version", back_populates="cycles")
    executions = relationship("Execution", back_populates="cycle")

    __table_args__ = (Index("idx_cycle_version", "version_id"),)

    def __repr__(self):
        return f"<Cycle(id='{self.id}', name='{self.name}')>"


class User(Base):
    """Executor of test executions."""

    __tablename__ = "user"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(NAME_LENGTH), nullable=False, unique=True)

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}')>"


class ExecutionStatus(Base):
    """Outcome of a test execution (PASS, FAIL, ...)."""

    __tablename__ = "execution_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(NAME_LENGTH), nullable=False, unique=True)

    def __repr__(self):
        return f"<ExecutionStatus(id={self.id}, name='{self.name}')>"


class Execution(Base):
    """Single execution of an item within a cycle."""

    __tablename__ = "execution"

    id = Column(String(KEY_LENGTH), primary_key=True)
    item_id = Column(String(KEY_LENGTH), ForeignKey("item.id"))
    cycle_id = Column(String(KEY_LENGTH), ForeignKey("cycle.id"))
    status_id = Column(Integer, ForeignKey("execution_status.id"))
    executor_id = Column(Integer, ForeignKey("user.id"))
    created = Column(DateTime)
    executed = Column(DateTime)

    item = relationship("Item", back_populates="executions")
    cycle = relationship("Cycle", back_populates="executions")
    status = relationship("ExecutionStatus")
    executor = relationship("User")

    __table_args__ = (
        Index("idx_execution_item", "item_id"),
        Index("idx_execution_cycle", "cycle_id"),
    )

    def __repr__(self):
        return f"<Execution(id='{self.id}', item_id='{self.item_id}', cycle_id='{self.cycle_id}')>"


class LastSync(Base):
    """Timestamp of the last successful synchronization of one sync scope."""

    __tablename__ = "last_sync"

    sync_key = Column(String(KEY_LENGTH), primary_key=True)
    project_name = Column(String(NAME_LENGTH), primary_key=True)
    scope = Column(String(NAME_LENGTH), primary_key=True, default="")
    last_sync = Column(DateTime, nullable=False)

    def __repr__(self):
        return (
            f"<LastSync(sync_key='{self.sync_key}', project='{self.project_name}', "
            f"scope='{self.scope}', last_sync={self.last_sync})>"
        )
