"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Zephyr for Jira (ZAPI) REST client implementing the ZapiSource protocol.

ZAPI answers in several list shapes: select options for projects, released and
unreleased lists for versions, a dictionary keyed by id for cycles, and a page
of executions with a separate status table for ZQL searches. This module turns
all of them into source models.
"""

import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from tmsync.rest_client import RestClient
from tmsync.source_models import ZapiCycle, ZapiExecution, ZapiProject, ZapiVersion

logger = logging.getLogger("tmsync.zapi_client")

ZQL_DATE_FORMAT = "%Y/%m/%d"


def build_execution_zql(
    project_name: str, version_name: str | None = None, since: datetime | None = None
) -> str:
    """Build the ZQL query selecting the executions of a project version.

    Args:
        project_name: Name of the project
        version_name: Optional version name
        since: Only executions created or executed on or after this day

    Returns:
        The ZQL query
    """
    zql = f'project = "{project_name}"'
    if version_name is not None:
        zql += f' AND fixVersion = "{version_name}"'
    if since is not None:
        day = since.strftime(ZQL_DATE_FORMAT)
        zql += f" AND (creationDate >= '{day}' or executionDate >= '{day}')"
    return zql


def resolve_status(execution: dict[str, Any], statuses: dict[str, Any]) -> dict[str, Any]:
    """Replace the status id of a search result by its name from the status table."""
    status_id = execution.get("executionStatus")
    status = statuses.get(str(status_id)) if status_id is not None else None
    if isinstance(status, dict) and status.get("name"):
        return {**execution, "executionStatus": status["name"]}
    nested = execution.get("status")
    if isinstance(nested, dict) and nested.get("name"):
        return {**execution, "executionStatus": nested["name"]}
    return execution


class ZapiClient(RestClient):
    api_path = "/rest/zapi/latest"

    def get_projects(self) -> list[ZapiProject]:
        payload = self.get("/util/project-list") or {}
        return [
            ZapiProject(id=option["value"], name=option["label"])
            for option in payload.get("options", [])
        ]

    def get_project_versions(self, project: ZapiProject) -> list[ZapiVersion]:
        payload = self.get("/util/versionBoard-list", params={"projectId": project.id}) or {}
        entries = (payload.get("unreleasedVersions") or []) + (
            payload.get("releasedVersions") or []
        )
        return [ZapiVersion.model_validate(entry) for entry in entries]

    def get_cycles(self, project: ZapiProject, version: ZapiVersion) -> list[ZapiCycle]:
        params = {"projectId": project.id, "versionId": version.id}
        payload = self.get("/cycle", params=params) or {}
        cycles = []
        for cycle_id, body in payload.items():
            if cycle_id == "recordsCount" or not isinstance(body, dict):
                continue
            cycles.append(ZapiCycle.model_validate({**body, "id": cycle_id}))
        return cycles

    def search_executions(
        self, project_name: str, version_name: str | None = None, since: datetime | None = None
    ) -> Iterator[ZapiExecution]:
        """Iterate over the executions matched by a ZQL query."""
        zql = build_execution_zql(project_name, version_name, since)
        logger.info(f"Searching ZAPI executions: {zql}")
        page_size = self.config.page_size
        offset = 0
        while True:
            page = self.get(
                "/zql/executeSearch",
                params={"zqlQuery": zql, "offset": offset, "maxRecords": page_size},
            ) or {}
            executions = page.get("executions") or []
            statuses = page.get("status") or {}
            for execution in executions:
                yield ZapiExecution.model_validate(resolve_status(execution, statuses))

            offset += len(executions)
            total = page.get("totalCount")
            if len(executions) < page_size or (total is not None and offset >= int(total)):
                return
