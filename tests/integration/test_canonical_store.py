"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""Integration tests for the canonical store on SQLite."""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest
from sqlalchemy import inspect

from tmsync.core.db_manager import CanonicalStore, PartitionCommitError, StoreError
from tmsync.domain.models import (
    UNSET,
    Cycle,
    EntityKind,
    Execution,
    ExecutionStatus,
    Found,
    Item,
    ItemMetaData,
    NotFound,
    Project,
    User,
    Version,
)


@pytest.fixture
def project(store):
    return store.find_or_create(EntityKind.PROJECT, "Payments")


@pytest.fixture
def version(store, project):
    return store.find_or_create(EntityKind.VERSION, (project.id, "1.0"))


def make_execution(store, project, version, execution_id="E-1"):
    store.merge(Item(id="PAY-T1", project_id=project.id))
    store.merge(Cycle(id="PAY-C1", version_id=version.id))
    status = store.find_or_create(EntityKind.EXECUTION_STATUS, "PASS")
    executor = store.find_or_create(EntityKind.USER, "alice")
    return Execution(
        id=execution_id,
        item_id="PAY-T1",
        cycle_id="PAY-C1",
        status_id=status.id,
        executor_id=executor.id,
        executed=datetime(2024, 5, 2, 9),
    )


@pytest.mark.integration
@pytest.mark.db
class TestIdentity:
    def test_find_missing_entity(self, store):
        assert store.find(EntityKind.PROJECT, "Payments") == NotFound(key="Payments")

    def test_find_or_create_returns_the_same_row(self, store):
        first = store.find_or_create(EntityKind.PROJECT, "Payments")
        second = store.find_or_create(EntityKind.PROJECT, "Payments")

        assert first.id is not None
        assert first == second
        assert store.find(EntityKind.PROJECT, "Payments") == Found(first)
        assert store.row_counts()["project"] == 1

    def test_version_is_keyed_by_project_and_name(self, store, project):
        other = store.find_or_create(EntityKind.PROJECT, "Billing")

        first = store.find_or_create(EntityKind.VERSION, (project.id, "1.0"))
        second = store.find_or_create(EntityKind.VERSION, (other.id, "1.0"))

        assert first.id != second.id
        assert first.project_id == project.id
        assert store.row_counts()["version"] == 2

    def test_sentinel_is_an_ordinary_name(self, store):
        unset = store.find_or_create(EntityKind.USER, UNSET)

        assert store.find_or_create(EntityKind.USER, UNSET).id == unset.id
        assert store.find_or_create(EntityKind.USER, "alice").id != unset.id

    def test_concurrent_find_or_create_creates_one_row(self, store):
        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(
                executor.map(
                    lambda _: store.find_or_create(EntityKind.EXECUTION_STATUS, "PASS"), range(8)
                )
            )

        assert len({status.id for status in results}) == 1
        assert store.row_counts()["execution_status"] == 1


@pytest.mark.integration
@pytest.mark.db
class TestMerge:
    def test_item_with_versions_and_metadata(self, store, project, version):
        item = Item(
            id="PAY-T1",
            name="Login works",
            project_id=project.id,
            type="Test",
            status="Approved",
            priority=UNSET,
            created=datetime(2024, 5, 1, 10),
            version_ids=[version.id, version.id],
            meta_data=[ItemMetaData(name="Label", value="smoke")],
        )

        merged = store.merge(item)

        assert merged == item.model_copy(update={"version_ids": [version.id]})
        assert store.find(EntityKind.ITEM, "PAY-T1") == Found(merged)

    def test_merge_overwrites_every_business_field(self, store, project, version):
        store.merge(
            Item(
                id="PAY-T1",
                name="Old",
                project_id=project.id,
                version_ids=[version.id],
                meta_data=[ItemMetaData(name="Label", value="old")],
            )
        )

        store.merge(Item(id="PAY-T1", name="New", project_id=project.id))

        found = store.find(EntityKind.ITEM, "PAY-T1").value
        assert found.name == "New"
        assert found.version_ids == []
        assert found.meta_data == []
        assert store.row_counts()["item_metadata"] == 0

    def test_merge_is_idempotent(self, store, project, version):
        execution = make_execution(store, project, version)

        first = store.merge(execution)
        before = store.row_counts()
        second = store.merge(execution)

        assert first == second
        assert store.row_counts() == before
        assert before["execution"] == 1

    def test_version_dates(self, store, project):
        version = Version(
            project_id=project.id,
            name="2.0",
            start_date=datetime(2024, 1, 1),
            end_date=datetime(2024, 3, 1),
        )

        merged = store.merge(version)

        assert merged.id is not None
        assert store.find(EntityKind.VERSION, (project.id, "2.0")) == Found(merged)
        assert merged.end_date == datetime(2024, 3, 1)

    def test_named_entities_merge_to_their_row(self, store):
        created = store.merge(ExecutionStatus(name="FAIL"))

        assert store.merge(ExecutionStatus(name="FAIL")).id == created.id
        assert store.merge(User(name="bob")).name == "bob"

    def test_execution_without_dependencies_is_rejected(self, store):
        with pytest.raises(StoreError, match="item_id"):
            store.merge(Execution(id="E-1", cycle_id="C", status_id=1, executor_id=1))
        assert store.row_counts()["execution"] == 0

    def test_item_with_unknown_version_is_rejected(self, store, project):
        with pytest.raises(StoreError):
            store.merge(Item(id="PAY-T1", project_id=project.id, version_ids=[999]))
        assert store.find(EntityKind.ITEM, "PAY-T1") == NotFound(key="PAY-T1")


@pytest.mark.integration
@pytest.mark.db
class TestPartitionedWrites:
    def test_all_partitions_commit(self, store):
        projects = [Project(name=f"P{index:04d}") for index in range(1200)]

        outcome = store.merge_all(projects, partition_size=500)

        assert outcome.partition_count == 3
        assert outcome.committed_partitions == [0, 1, 2]
        assert len(outcome.results) == 1200
        assert store.row_counts()["project"] == 1200

    def test_failing_partition_rolls_back_alone(self, store):
        projects = [Project(name=f"P{index:04d}") for index in range(1200)]

        def merge_or_fail(session, project):
            if project.name == "P0700":
                raise ValueError("rejected")
            return store.merge(project, session=session)

        with pytest.raises(PartitionCommitError) as excinfo:
            store.run_partitioned(projects, merge_or_fail, partition_size=500)

        error = excinfo.value
        assert error.partition_index == 1
        assert error.failing_key == "P0700"
        assert error.committed_partitions == [0]
        assert len(error.remaining) == 700
        assert error.remaining[0].name == "P0500"
        assert store.row_counts()["project"] == 500
        assert isinstance(store.find(EntityKind.PROJECT, "P0499"), Found)
        assert store.find(EntityKind.PROJECT, "P0500") == NotFound(key="P0500")

    def test_failure_is_logged_with_the_failing_record(self, store, recording_handler):
        db_logger = logging.getLogger("tmsync.core.db_manager")
        db_logger.addHandler(recording_handler)
        projects = [Project(name="Payments"), Project(name="Billing")]

        def merge_or_fail(session, project):
            if project.name == "Billing":
                raise ValueError("rejected")
            return store.merge(project, session=session)

        try:
            with pytest.raises(PartitionCommitError):
                store.run_partitioned(projects, merge_or_fail, partition_size=10)
        finally:
            db_logger.removeHandler(recording_handler)

        failure = recording_handler.records[-1]
        assert failure.levelno == logging.ERROR
        assert failure.context_data["key"] == "Billing"
        assert failure.context_data["partition"] == 0
        assert failure.context_data["record"]["name"] == "Billing"

    def test_database_errors_fail_the_partition(self, store, project, version):
        execution = make_execution(store, project, version)
        dangling = execution.model_copy(update={"id": "E-2", "item_id": "PAY-T404"})

        with pytest.raises(PartitionCommitError) as excinfo:
            store.merge_all([execution, dangling], partition_size=10)

        assert excinfo.value.failing_key == "E-2"
        assert store.row_counts()["execution"] == 0

    def test_empty_input(self, store):
        outcome = store.merge_all([], partition_size=10)

        assert outcome.partition_count == 0
        assert outcome.results == []


@pytest.mark.integration
@pytest.mark.db
class TestBookkeeping:
    def test_last_sync_round_trip(self, store):
        assert store.get_last_sync("ZAPI", "Payments", "1.0") is None

        store.update_last_sync("ZAPI", "Payments", datetime(2024, 5, 1), scope="1.0")
        store.update_last_sync("ZAPI", "Payments", datetime(2024, 5, 2), scope="1.0")

        assert store.get_last_sync("ZAPI", "Payments", "1.0") == datetime(2024, 5, 2)
        assert store.get_last_sync("ZAPI", "Payments") is None

    def test_row_counts_cover_every_table(self, store):
        assert set(store.row_counts()) == {
            "project",
            "version",
            "item",
            "cycle",
            "user",
            "execution_status",
            "execution",
            "item_metadata",
        }

    def test_migrations_create_the_schema(self, db_config):
        fresh = CanonicalStore(db_config.model_copy(update={"db_path": db_config.db_path + "2"}))
        try:
            fresh.migrate()

            tables = set(inspect(fresh.engine).get_table_names())
            assert {"project", "item", "item_version", "last_sync", "alembic_version"} <= tables
            assert fresh.find_or_create(EntityKind.PROJECT, "Payments").id is not None
        finally:
            fresh.dispose()
