"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""Jira REST API (v2) client implementing the JiraSource protocol."""

import logging
from collections.abc import Iterator
from datetime import datetime

from tmsync.rest_client import RestClient
from tmsync.source_models import JiraIssue, JiraProject, JiraVersion

logger = logging.getLogger("tmsync.jira_client")

JQL_DATE_FORMAT = "%Y/%m/%d %H:%M"


def build_issue_jql(
    project_key: str, issue_type: str, updated_since: datetime | None = None
) -> str:
    jql = f'project = "{project_key}" AND issuetype = "{issue_type}"'
    if updated_since is not None:
        jql += f' AND updated >= "{updated_since.strftime(JQL_DATE_FORMAT)}"'
    return jql + " ORDER BY key ASC"


class JiraClient(RestClient):
    api_path = "/rest/api/2"

    def get_project(self, key: str) -> JiraProject | None:
        payload = self.get(f"/project/{key}", allow_missing=True)
        return JiraProject.model_validate(payload) if payload else None

    def get_projects(self) -> list[JiraProject]:
        return [JiraProject.model_validate(entry) for entry in self.get("/project") or []]

    def get_project_versions(self, key: str) -> list[JiraVersion]:
        return [
            JiraVersion.model_validate(entry)
            for entry in self.get(f"/project/{key}/versions") or []
        ]

    def search_issues(
        self, project_key: str, issue_type: str, updated_since: datetime | None = None
    ) -> Iterator[JiraIssue]:
        """Iterate over the issues of one type, optionally only those updated since a time."""
        jql = build_issue_jql(project_key, issue_type, updated_since)
        logger.info(f"Searching Jira issues: {jql}")
        page_size = self.config.page_size
        start_at = 0
        while True:
            params = {
                "jql": jql,
                "fields": "*all",
                "expand": "names",
                "startAt": start_at,
                "maxResults": page_size,
            }
            page = self.get("/search", params=params) or {}
            issues = page.get("issues") or []
            # display names of the custom fields come once per page
            names = page.get("names") or {}
            for payload in issues:
                yield JiraIssue.model_validate({**payload, "names": names})

            start_at += len(issues)
            total = page.get("total")
            if len(issues) < page_size or (total is not None and start_at >= int(total)):
                return
