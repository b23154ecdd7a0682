"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Zephyr Scale (ATM 1.0) REST client implementing the ScaleSource protocol.

Test case and test run searches return bare JSON lists, so pagination stops at
the first short page.
"""

import logging
from collections.abc import Iterator

from tmsync.rest_client import RestClient
from tmsync.source_models import ScaleTestCase, ScaleTestExecution, ScaleTestRun

logger = logging.getLogger("tmsync.scale_client")


def build_search_query(project_key: str, folder: str | None = None) -> str:
    """Build the search query for the test cases or runs of a project.

    Args:
        project_key: Key of the Jira project the records belong to
        folder: Optional folder to restrict the search to

    Returns:
        The query string expected by the search endpoints
    """
    query = f'projectKey = "{project_key}"'
    if folder:
        query += f' AND folder = "{folder}"'
    return query


class ScaleClient(RestClient):
    api_path = "/rest/atm/1.0"

    def get_test_case(self, key: str) -> ScaleTestCase | None:
        payload = self.get(f"/testcase/{key}", allow_missing=True)
        return ScaleTestCase.model_validate(payload) if payload else None

    def get_test_run(self, key: str) -> ScaleTestRun | None:
        payload = self.get(f"/testrun/{key}", allow_missing=True)
        return ScaleTestRun.model_validate(payload) if payload else None

    def list_test_cases(
        self, project_key: str, folder: str | None = None
    ) -> Iterator[ScaleTestCase]:
        query = build_search_query(project_key, folder)
        logger.info(f"Searching Scale test cases: {query}")
        for payload in self.paginate("/testcase/search", params={"query": query}, total_key=None):
            yield ScaleTestCase.model_validate(payload)

    def list_test_runs(self, project_key: str, folder: str | None = None) -> Iterator[ScaleTestRun]:
        query = build_search_query(project_key, folder)
        logger.info(f"Searching Scale test runs: {query}")
        for payload in self.paginate("/testrun/search", params={"query": query}, total_key=None):
            yield ScaleTestRun.model_validate(payload)

    def list_executions(self, run_key: str) -> list[ScaleTestExecution]:
        """Return the executions of a test run; the search results omit them."""
        run = self.get_test_run(run_key)
        return run.items if run else []
