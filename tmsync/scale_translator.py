"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Translation of Zephyr Scale records into canonical entities.

Test cases become items, test runs become cycles and the items of a test run
become executions. Cycle names are prefixed with the normalized folder of the
test run so that runs with the same name in different folders stay apart.
"""

from collections.abc import Iterable
from typing import Any

from tmsync.domain.models import UNSET, Cycle, Execution, Item, ItemMetaData, Version
from tmsync.source_models import ScaleTestCase, ScaleTestExecution, ScaleTestRun
from tmsync.translation import (
    ITEM_NAME_LENGTH,
    ResolvedDependencies,
    is_blank,
    metadata,
    normalize_folder,
    or_unset,
    require_record,
    truncate,
    user_key,
)

TEST_CASE_TYPE = "Test"
SCALE_STATUS_NAMES = ("In Progress", "Fail", "Blocked", "Pass", "Not Executed")


def scale_status_key(name: str | None) -> str:
    """Status key of a Scale execution, using Scale's own spelling for known statuses."""
    if is_blank(name):
        return UNSET
    name = name.strip()
    for known in SCALE_STATUS_NAMES:
        if known.lower() == name.lower():
            return known
    return name


def _as_strings(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(entry) for entry in value if entry is not None]
    return [str(value)]


def case_version_names(test_case: ScaleTestCase) -> set[str]:
    """Version names held by custom fields whose name mentions "version"."""
    names: set[str] = set()
    for field_name, value in test_case.custom_fields.items():
        if "version" in field_name.lower():
            names.update(_as_strings(value))
    return names


def match_run_version(test_run: ScaleTestRun, versions: Iterable[Version]) -> Version | None:
    """Find the project version a test run targets, ignoring case."""
    if is_blank(test_run.version):
        return None
    wanted = test_run.version.strip().lower()
    for version in versions:
        if version.name.lower() == wanted:
            return version
    return None


def case_metadata(test_case: ScaleTestCase) -> list[ItemMetaData]:
    entries = []
    for name, value in (
        ("Component", test_case.component),
        ("LastTestResultStatus", test_case.last_test_result_status),
        ("Folder", test_case.folder),
        ("Owner", test_case.owner),
        ("CreatedBy", test_case.created_by),
    ):
        if value:
            entries.append(metadata(name, value))
    entries.extend(metadata("Label", label) for label in test_case.labels)
    entries.extend(metadata("IssueLink", link) for link in test_case.issue_links)
    for name, value in test_case.custom_fields.items():
        for text in _as_strings(value):
            entries.append(metadata(name, text))
    return entries


def translate_test_case(test_case: ScaleTestCase, deps: ResolvedDependencies) -> Item:
    """
    Translate a Scale test case into an item.

    Args:
        test_case: The test case as read from Scale
        deps: Resolved project and the project's versions

    Returns:
        The canonical item
    """
    require_record(test_case, "Scale test case")
    project = deps.require("project", test_case)
    version_names = case_version_names(test_case)

    return Item(
        id=test_case.key,
        name=truncate(test_case.name, ITEM_NAME_LENGTH),
        project_id=project.id,
        type=TEST_CASE_TYPE,
        status=or_unset(test_case.status),
        priority=or_unset(test_case.priority),
        created=test_case.created_on,
        updated=test_case.updated_on,
        version_ids=[version.id for version in deps.versions if version.name in version_names],
        meta_data=case_metadata(test_case),
    )


def translate_test_run(test_run: ScaleTestRun, deps: ResolvedDependencies) -> Cycle:
    """Translate a Scale test run into a cycle named after its folder and name."""
    require_record(test_run, "Scale test run")
    version = deps.version
    return Cycle(
        id=test_run.key,
        version_id=version.id if version else None,
        name=truncate(normalize_folder(test_run.folder) + (test_run.name or ""), ITEM_NAME_LENGTH),
        start_date=test_run.planned_start_date,
        end_date=test_run.planned_end_date,
    )


def execution_status_key(execution: ScaleTestExecution) -> str:
    return scale_status_key(execution.status)


def execution_executor_key(execution: ScaleTestExecution) -> str:
    return user_key(execution.executed_by)


def translate_execution(
    test_run: ScaleTestRun, execution: ScaleTestExecution, deps: ResolvedDependencies
) -> Execution:
    """
    Translate one item of a Scale test run into an execution.

    The item, cycle, status and executor must all be resolved; a blank status
    or executor is expected to have been resolved to the sentinel.
    """
    require_record(test_run, "Scale test run")
    require_record(execution, "Scale test execution")
    item = deps.require("item", execution)
    cycle = deps.require("cycle", execution)
    status = deps.require("status", execution)
    executor = deps.require("executor", execution)

    return Execution(
        id=execution.id,
        item_id=item.id,
        cycle_id=cycle.id,
        status_id=status.id,
        executor_id=executor.id,
        created=test_run.created_on,
        executed=execution.execution_date,
    )
