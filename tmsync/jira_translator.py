"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Translation of Jira projects, versions and issues into canonical entities.

Issues become items. Their fix and affected versions both count as item
versions, and components, the assignee, labels and the remaining issue fields
are kept as item metadata.
"""

from collections.abc import Iterable
from typing import Any

from tmsync.domain.models import Item, ItemMetaData, Version
from tmsync.source_models import DEFAULT_VALUES, JiraIssue, JiraVersion
from tmsync.translation import (
    ITEM_NAME_LENGTH,
    ResolvedDependencies,
    metadata,
    or_unset,
    project_key,
    require_record,
    truncate,
)

PLUGIN_MARKER = "com.atlassian.jira.plugin"
OPTION_MARKER = "customfieldoption"


def issue_project_key(issue: JiraIssue) -> str:
    """Project name of an issue, falling back to its key; the sentinel when absent."""
    if issue.project is None:
        return project_key(None)
    return project_key(issue.project.name or issue.project.key)


def issue_version_names(issue: JiraIssue) -> list[str]:
    """Names of the fix and affected versions of an issue, blank names as the sentinel."""
    names = [or_unset(version.name) for version in issue.fix_versions + issue.affected_versions]
    return list(dict.fromkeys(names))


def translate_version(version: JiraVersion, deps: ResolvedDependencies) -> Version:
    """Translate a Jira version of the resolved project."""
    require_record(version, "Jira version")
    project = deps.require("project", version)
    return Version(
        project_id=project.id,
        name=or_unset(version.name),
        start_date=version.start_date,
        end_date=version.release_date,
    )


def parse_issue_field(value: Any) -> list[str]:
    """
    Extract the displayable values of a Jira field.

    Plain values are used as they are, objects through their ``name`` or
    ``value`` attribute and custom field option lists option by option.
    Plugin payloads and other structures are skipped.
    """
    if value is None or PLUGIN_MARKER in str(value):
        return []
    if isinstance(value, dict):
        for attribute in ("name", "value"):
            if isinstance(value.get(attribute), str):
                return [value[attribute]]
        return []
    if isinstance(value, list):
        if OPTION_MARKER not in str(value).lower():
            return []
        values = []
        for option in value:
            if not isinstance(option, dict):
                continue
            remaining = {k: v for k, v in option.items() if k not in ("self", "id")}
            if not remaining:
                continue
            first = str(next(iter(remaining.values())))
            if len(remaining) == 1 and first in DEFAULT_VALUES:
                continue
            values.append(first)
        return values
    return [str(value)]


def issue_metadata(issue: JiraIssue, fields_to_sync: Iterable[str] = ()) -> list[ItemMetaData]:
    """Metadata of an issue; ``fields_to_sync`` limits the custom fields kept (empty keeps all)."""
    wanted = set(fields_to_sync)
    entries = [metadata("Component", component) for component in issue.components]
    if issue.assignee_email and issue.assignee_email.strip():
        entries.append(metadata("Assignee", issue.assignee_email))
    entries.extend(metadata("Label", label) for label in issue.labels)
    for name, value in issue.custom_fields.items():
        if wanted and name not in wanted:
            continue
        entries.extend(metadata(name, text) for text in parse_issue_field(value))
    return entries


def translate_issue(
    issue: JiraIssue, deps: ResolvedDependencies, fields_to_sync: Iterable[str] = ()
) -> Item:
    """
    Translate a Jira issue into an item.

    Args:
        issue: The issue as read from Jira
        deps: Resolved project and the versions named by ``issue_version_names``
        fields_to_sync: Custom fields copied into metadata (empty for all)

    Returns:
        The canonical item
    """
    require_record(issue, "Jira issue")
    project = deps.require("project", issue)
    return Item(
        id=issue.key,
        name=truncate(issue.summary, ITEM_NAME_LENGTH),
        project_id=project.id,
        type=or_unset(issue.issue_type),
        status=or_unset(issue.status, upper=True),
        priority=or_unset(issue.priority, upper=True),
        created=issue.created,
        updated=issue.updated,
        version_ids=list(dict.fromkeys(version.id for version in deps.versions)),
        meta_data=issue_metadata(issue, fields_to_sync),
    )
