"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Contracts of the external systems the synchronizers read from.

The synchronizers only depend on these protocols. The REST clients in
``jira_client``, ``scale_client`` and ``zapi_client`` implement them, and tests
substitute mocks.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol, runtime_checkable

from tmsync.source_models import (
    JiraIssue,
    JiraProject,
    JiraVersion,
    ScaleTestCase,
    ScaleTestExecution,
    ScaleTestRun,
    ZapiCycle,
    ZapiExecution,
    ZapiProject,
    ZapiVersion,
)


class TransientSourceError(Exception):
    """A read from a source system failed in a way that may succeed when repeated."""


@runtime_checkable
class JiraSource(Protocol):
    def get_project(self, key: str) -> JiraProject | None: ...

    def get_projects(self) -> list[JiraProject]: ...

    def get_project_versions(self, key: str) -> list[JiraVersion]: ...

    def search_issues(
        self, project_key: str, issue_type: str, updated_since: datetime | None = None
    ) -> Iterable[JiraIssue]: ...


@runtime_checkable
class ScaleSource(Protocol):
    def get_test_case(self, key: str) -> ScaleTestCase | None: ...

    def get_test_run(self, key: str) -> ScaleTestRun | None: ...

    def list_test_cases(
        self, project_key: str, folder: str | None = None
    ) -> Iterable[ScaleTestCase]: ...

    def list_test_runs(
        self, project_key: str, folder: str | None = None
    ) -> Iterable[ScaleTestRun]: ...

    def list_executions(self, run_key: str) -> list[ScaleTestExecution]: ...


@runtime_checkable
class ZapiSource(Protocol):
    def get_projects(self) -> list[ZapiProject]: ...

    def get_project_versions(self, project: ZapiProject) -> list[ZapiVersion]: ...

    def get_cycles(self, project: ZapiProject, version: ZapiVersion) -> list[ZapiCycle]: ...

    def search_executions(
        self, project_name: str, version_name: str | None = None, since: datetime | None = None
    ) -> Iterable[ZapiExecution]: ...
