"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Models of the records read from the external test-management systems.

Field names follow Python conventions; the camelCase names used on the wire are
accepted as aliases. Timestamps are normalized to naive UTC datetimes on the way
in, whatever format the source system uses.
"""

from datetime import UTC, datetime
from typing import Any

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_VALUES = frozenset({"0.0", "-1", "{}", "[]", "None", "N/A", str(2**63 - 1)})


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse a source timestamp into a naive UTC datetime.

    Accepts datetimes, ISO or free-form strings, and epoch milliseconds.
    Blank values become None.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
    elif isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.isdigit():
            parsed = datetime.fromtimestamp(int(text) / 1000, tz=UTC)
        else:
            parsed = date_parser.parse(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def name_of(value: Any) -> str | None:
    """Return the display name of a nested ``{"name": ...}`` object, or the value itself."""
    if isinstance(value, dict):
        value = value.get("name") or value.get("value")
    return None if value is None else str(value)


class SourceRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# Jira


class JiraProject(SourceRecord):
    id: str | None = None
    key: str
    name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return None if value is None else str(value)


class JiraVersion(SourceRecord):
    id: str | None = None
    name: str | None = None
    start_date: datetime | None = Field(default=None, alias="startDate")
    release_date: datetime | None = Field(default=None, alias="releaseDate")
    released: bool = False
    archived: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return None if value is None else str(value)

    @field_validator("start_date", "release_date", mode="before")
    @classmethod
    def parse_dates(cls, value):
        return parse_datetime(value)


JIRA_STANDARD_FIELDS = frozenset(
    {
        "summary",
        "project",
        "issuetype",
        "status",
        "priority",
        "created",
        "updated",
        "fixVersions",
        "versions",
        "components",
        "assignee",
        "labels",
    }
)


class JiraIssue(SourceRecord):
    """
    A Jira issue.

    Accepts the REST payload shape (``{"key": ..., "fields": {...}, "names": {...}}``);
    fields outside the standard set are kept in ``custom_fields`` under their
    display name when the payload was requested with ``expand=names``.
    """

    key: str
    summary: str | None = None
    project: JiraProject | None = None
    issue_type: str | None = Field(default=None, alias="issuetype")
    status: str | None = None
    priority: str | None = None
    created: datetime | None = None
    updated: datetime | None = None
    fix_versions: list[JiraVersion] = Field(default_factory=list, alias="fixVersions")
    affected_versions: list[JiraVersion] = Field(default_factory=list, alias="versions")
    components: list[str] = Field(default_factory=list)
    assignee_email: str | None = None
    labels: list[str] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def flatten_fields(cls, data):
        if not isinstance(data, dict) or "fields" not in data:
            return data
        fields = data.get("fields") or {}
        names = data.get("names") or {}
        flattened = {"key": data.get("key")}
        for field_id, value in fields.items():
            if field_id in JIRA_STANDARD_FIELDS:
                flattened[field_id] = value
            elif value is not None:
                flattened.setdefault("custom_fields", {})[names.get(field_id, field_id)] = value
        assignee = fields.get("assignee")
        if isinstance(assignee, dict):
            flattened["assignee_email"] = assignee.get("emailAddress")
        return flattened

    @field_validator("issue_type", "status", "priority", mode="before")
    @classmethod
    def nested_name(cls, value):
        return name_of(value)

    @field_validator("components", mode="before")
    @classmethod
    def component_names(cls, value):
        return [name_of(component) for component in value or [] if name_of(component)]

    @field_validator("labels", "fix_versions", "affected_versions", mode="before")
    @classmethod
    def empty_list(cls, value):
        return value or []

    @field_validator("created", "updated", mode="before")
    @classmethod
    def parse_dates(cls, value):
        return parse_datetime(value)


# Zephyr Scale


class ScaleTestCase(SourceRecord):
    key: str
    name: str | None = None
    project_key: str | None = Field(default=None, alias="projectKey")
    folder: str | None = None
    status: str | None = None
    priority: str | None = None
    component: str | None = None
    owner: str | None = None
    created_by: str | None = Field(default=None, alias="createdBy")
    created_on: datetime | None = Field(default=None, alias="createdOn")
    updated_on: datetime | None = Field(default=None, alias="updatedOn")
    last_test_result_status: str | None = Field(default=None, alias="lastTestResultStatus")
    labels: list[str] = Field(default_factory=list)
    issue_links: list[str] = Field(default_factory=list, alias="issueLinks")
    custom_fields: dict[str, Any] = Field(default_factory=dict, alias="customFields")

    @field_validator("created_on", "updated_on", mode="before")
    @classmethod
    def parse_dates(cls, value):
        return parse_datetime(value)

    @field_validator("last_test_result_status", mode="before")
    @classmethod
    def result_status(cls, value):
        return name_of(value)

    @field_validator("labels", "issue_links", mode="before")
    @classmethod
    def empty_list(cls, value):
        return value or []

    @field_validator("custom_fields", mode="before")
    @classmethod
    def empty_dict(cls, value):
        return value or {}


class ScaleTestExecution(SourceRecord):
    id: str
    test_case_key: str | None = Field(default=None, alias="testCaseKey")
    status: str | None = None
    executed_by: str | None = Field(default=None, alias="executedBy")
    execution_date: datetime | None = Field(default=None, alias="executionDate")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)

    @field_validator("execution_date", mode="before")
    @classmethod
    def parse_dates(cls, value):
        return parse_datetime(value)


class ScaleTestRun(SourceRecord):
    key: str
    name: str | None = None
    project_key: str | None = Field(default=None, alias="projectKey")
    folder: str | None = None
    version: str | None = None
    created_on: datetime | None = Field(default=None, alias="createdOn")
    updated_on: datetime | None = Field(default=None, alias="updatedOn")
    planned_start_date: datetime | None = Field(default=None, alias="plannedStartDate")
    planned_end_date: datetime | None = Field(default=None, alias="plannedEndDate")
    items: list[ScaleTestExecution] = Field(default_factory=list)

    @field_validator(
        "created_on", "updated_on", "planned_start_date", "planned_end_date", mode="before"
    )
    @classmethod
    def parse_dates(cls, value):
        return parse_datetime(value)

    @field_validator("items", mode="before")
    @classmethod
    def empty_list(cls, value):
        return value or []


# ZAPI


class ZapiProject(SourceRecord):
    id: str
    name: str
    key: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)


class ZapiVersion(SourceRecord):
    id: str
    name: str

    @model_validator(mode="before")
    @classmethod
    def version_board_entry(cls, data):
        # versionBoard-list entries carry the id in "value" and the name in "label"
        if isinstance(data, dict) and "id" not in data and "value" in data:
            return {"id": data["value"], "name": data.get("label")}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)


class ZapiCycle(SourceRecord):
    id: str
    name: str | None = None
    start_date: datetime | None = Field(default=None, alias="startDate")
    end_date: datetime | None = Field(default=None, alias="endDate")
    version_name: str | None = Field(default=None, alias="versionName")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_dates(cls, value):
        return parse_datetime(value)


class ZapiExecution(SourceRecord):
    id: str
    issue_key: str | None = Field(default=None, alias="issueKey")
    execution_status: str | None = Field(default=None, alias="executionStatus")
    executed_on: datetime | None = Field(default=None, alias="executedOn")
    executed_by_user_name: str | None = Field(default=None, alias="executedByUserName")
    cycle_id: str | None = Field(default=None, alias="cycleId")
    cycle_name: str | None = Field(default=None, alias="cycleName")
    version_name: str | None = Field(default=None, alias="versionName")
    project_name: str | None = Field(default=None, alias="project")
    created_on: datetime | None = Field(default=None, alias="creationDate")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)

    @field_validator("cycle_id", mode="before")
    @classmethod
    def coerce_cycle_id(cls, value):
        return None if value is None else str(value)

    @field_validator("execution_status", mode="before")
    @classmethod
    def status_name(cls, value):
        return name_of(value)

    @field_validator("executed_on", "created_on", mode="before")
    @classmethod
    def parse_dates(cls, value):
        return parse_datetime(value)
