"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""Tests for the Jira, Zephyr Scale and ZAPI REST clients."""

from datetime import datetime
from urllib.parse import parse_qs, urlparse

import pytest
import responses
from requests.exceptions import HTTPError

from tmsync.core.config import SourceConfig
from tmsync.jira_client import JiraClient, build_issue_jql
from tmsync.scale_client import ScaleClient, build_search_query
from tmsync.source_models import ZapiProject, ZapiVersion
from tmsync.sources import JiraSource, ScaleSource, TransientSourceError, ZapiSource
from tmsync.zapi_client import ZapiClient, build_execution_zql

JIRA_URL = "https://jira.example.com"
JIRA_API = f"{JIRA_URL}/rest/api/2"
SCALE_API = f"{JIRA_URL}/rest/atm/1.0"
ZAPI_API = f"{JIRA_URL}/rest/zapi/latest"


def query_of(call) -> dict[str, list[str]]:
    return parse_qs(urlparse(call.request.url).query)


@pytest.fixture
def source_config():
    return SourceConfig(
        name="jira", base_url=JIRA_URL, username="alice", api_token="secret", page_size=2
    )


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    delays = []
    monkeypatch.setattr("tmsync.rest_client.time.sleep", delays.append)
    return delays


@pytest.mark.unit
class TestRestClient:
    @responses.activate
    def test_basic_authentication(self, source_config):
        responses.add(responses.GET, f"{JIRA_API}/project", json=[], status=200)

        JiraClient(source_config).get_projects()

        assert responses.calls[0].request.headers["Authorization"].startswith("Basic ")

    @responses.activate
    def test_bearer_authentication(self, source_config):
        responses.add(responses.GET, f"{JIRA_API}/project", json=[], status=200)
        config = source_config.model_copy(update={"username": ""})

        JiraClient(config).get_projects()

        assert responses.calls[0].request.headers["Authorization"] == "Bearer secret"

    @responses.activate
    def test_retries_temporary_failures(self, source_config, no_backoff):
        responses.add(responses.GET, f"{JIRA_API}/project", status=503)
        responses.add(responses.GET, f"{JIRA_API}/project", json=[{"key": "PAY"}], status=200)

        projects = JiraClient(source_config).get_projects()

        assert [project.key for project in projects] == ["PAY"]
        assert len(responses.calls) == 2
        assert len(no_backoff) == 1

    @responses.activate
    def test_exhausted_retries_raise_transient_error(self, source_config):
        responses.add(responses.GET, f"{JIRA_API}/project", status=503)

        with pytest.raises(TransientSourceError):
            JiraClient(source_config).get_projects()
        assert len(responses.calls) == source_config.max_retries + 1

    @responses.activate
    def test_client_errors_are_not_retried(self, source_config):
        responses.add(responses.GET, f"{JIRA_API}/project", status=400)

        with pytest.raises(HTTPError):
            JiraClient(source_config).get_projects()
        assert len(responses.calls) == 1

    @responses.activate
    def test_missing_resource_is_none_when_allowed(self, source_config):
        responses.add(responses.GET, f"{JIRA_API}/project/NOPE", status=404)

        assert JiraClient(source_config).get_project("NOPE") is None
        assert len(responses.calls) == 1

    @responses.activate
    def test_missing_resource_raises_otherwise(self, source_config):
        responses.add(responses.GET, f"{JIRA_API}/project/NOPE/versions", status=404)

        with pytest.raises(HTTPError):
            JiraClient(source_config).get_project_versions("NOPE")

    def test_clients_implement_source_protocols(self, source_config):
        assert isinstance(JiraClient(source_config), JiraSource)
        assert isinstance(ScaleClient(source_config), ScaleSource)
        assert isinstance(ZapiClient(source_config), ZapiSource)


@pytest.mark.unit
class TestJiraClient:
    def test_issue_jql(self):
        assert (
            build_issue_jql("PAY", "Bug")
            == 'project = "PAY" AND issuetype = "Bug" ORDER BY key ASC'
        )
        assert build_issue_jql("PAY", "Bug", datetime(2024, 5, 1, 9, 5)) == (
            'project = "PAY" AND issuetype = "Bug" AND updated >= "2024/05/01 09:05" '
            "ORDER BY key ASC"
        )

    @responses.activate
    def test_search_issues_pages_and_names_custom_fields(self, source_config):
        names = {"customfield_1": "Region"}
        responses.add(
            responses.GET,
            f"{JIRA_API}/search",
            json={
                "total": 3,
                "names": names,
                "issues": [
                    {"key": "PAY-1", "fields": {"summary": "a", "customfield_1": "EMEA"}},
                    {"key": "PAY-2", "fields": {"summary": "b"}},
                ],
            },
        )
        responses.add(
            responses.GET,
            f"{JIRA_API}/search",
            json={"total": 3, "names": names, "issues": [{"key": "PAY-3", "fields": {}}]},
        )

        issues = list(JiraClient(source_config).search_issues("PAY", "Bug"))

        assert [issue.key for issue in issues] == ["PAY-1", "PAY-2", "PAY-3"]
        assert issues[0].custom_fields == {"Region": "EMEA"}
        assert query_of(responses.calls[0])["startAt"] == ["0"]
        assert query_of(responses.calls[1])["startAt"] == ["2"]
        assert query_of(responses.calls[0])["jql"] == [build_issue_jql("PAY", "Bug")]

    @responses.activate
    def test_project_versions(self, source_config):
        responses.add(
            responses.GET,
            f"{JIRA_API}/project/PAY/versions",
            json=[{"id": "1", "name": "1.0", "releaseDate": "2024-03-01"}],
        )

        versions = JiraClient(source_config).get_project_versions("PAY")

        assert versions[0].name == "1.0"
        assert versions[0].release_date == datetime(2024, 3, 1)


@pytest.mark.unit
class TestScaleClient:
    def test_search_query(self):
        assert build_search_query("PAY") == 'projectKey = "PAY"'
        assert build_search_query("PAY", "/Regression") == (
            'projectKey = "PAY" AND folder = "/Regression"'
        )

    @responses.activate
    def test_list_test_cases_stops_at_short_page(self, source_config):
        responses.add(
            responses.GET,
            f"{SCALE_API}/testcase/search",
            json=[{"key": "PAY-T1"}, {"key": "PAY-T2"}],
        )
        responses.add(responses.GET, f"{SCALE_API}/testcase/search", json=[{"key": "PAY-T3"}])

        cases = list(ScaleClient(source_config).list_test_cases("PAY", "/Regression"))

        assert [case.key for case in cases] == ["PAY-T1", "PAY-T2", "PAY-T3"]
        assert len(responses.calls) == 2
        assert query_of(responses.calls[0])["query"] == [build_search_query("PAY", "/Regression")]

    @responses.activate
    def test_list_executions_reads_the_test_run(self, source_config):
        responses.add(
            responses.GET,
            f"{SCALE_API}/testrun/PAY-C1",
            json={
                "key": "PAY-C1",
                "items": [{"id": 1, "testCaseKey": "PAY-T1", "status": "Pass"}],
            },
        )
        responses.add(responses.GET, f"{SCALE_API}/testrun/PAY-C2", status=404)

        client = ScaleClient(source_config)

        assert [execution.test_case_key for execution in client.list_executions("PAY-C1")] == [
            "PAY-T1"
        ]
        assert client.list_executions("PAY-C2") == []

    @responses.activate
    def test_missing_test_case_is_none(self, source_config):
        responses.add(responses.GET, f"{SCALE_API}/testcase/PAY-T9", status=404)

        assert ScaleClient(source_config).get_test_case("PAY-T9") is None


@pytest.mark.unit
class TestZapiClient:
    def test_execution_zql(self):
        assert build_execution_zql("Payments") == 'project = "Payments"'
        assert build_execution_zql("Payments", "1.0", datetime(2024, 5, 1, 12)) == (
            'project = "Payments" AND fixVersion = "1.0" '
            "AND (creationDate >= '2024/05/01' or executionDate >= '2024/05/01')"
        )

    @responses.activate
    def test_projects(self, source_config):
        responses.add(
            responses.GET,
            f"{ZAPI_API}/util/project-list",
            json={"options": [{"value": "100", "label": "Payments"}]},
        )

        assert ZapiClient(source_config).get_projects() == [ZapiProject(id="100", name="Payments")]

    @responses.activate
    def test_project_versions(self, source_config):
        responses.add(
            responses.GET,
            f"{ZAPI_API}/util/versionBoard-list",
            json={
                "unreleasedVersions": [{"value": "2", "label": "2.0"}],
                "releasedVersions": [{"value": "1", "label": "1.0"}],
            },
        )

        versions = ZapiClient(source_config).get_project_versions(
            ZapiProject(id="100", name="Payments")
        )

        assert [(version.id, version.name) for version in versions] == [("2", "2.0"), ("1", "1.0")]
        assert query_of(responses.calls[0])["projectId"] == ["100"]

    @responses.activate
    def test_cycles_skip_the_record_count(self, source_config):
        responses.add(
            responses.GET,
            f"{ZAPI_API}/cycle",
            json={
                "-1": {"name": "Ad hoc"},
                "31": {"name": "Sprint 4", "startDate": "2024-05-01"},
                "recordsCount": 2,
            },
        )

        cycles = ZapiClient(source_config).get_cycles(
            ZapiProject(id="100", name="Payments"), ZapiVersion(id="1", name="1.0")
        )

        assert {cycle.id: cycle.name for cycle in cycles} == {"-1": "Ad hoc", "31": "Sprint 4"}
        assert query_of(responses.calls[0])["versionId"] == ["1"]

    @responses.activate
    def test_search_executions_maps_status_ids(self, source_config):
        responses.add(
            responses.GET,
            f"{ZAPI_API}/zql/executeSearch",
            json={
                "totalCount": 3,
                "status": {"1": {"name": "PASS"}, "2": {"name": "FAIL"}},
                "executions": [
                    {"id": 1, "issueKey": "PAY-1", "executionStatus": "1"},
                    {"id": 2, "issueKey": "PAY-2", "executionStatus": "2"},
                ],
            },
        )
        responses.add(
            responses.GET,
            f"{ZAPI_API}/zql/executeSearch",
            json={
                "totalCount": 3,
                "executions": [
                    {"id": 3, "executionStatus": "-1", "status": {"name": "UNEXECUTED"}},
                ],
            },
        )

        executions = list(ZapiClient(source_config).search_executions("Payments", "1.0"))

        assert [execution.execution_status for execution in executions] == [
            "PASS",
            "FAIL",
            "UNEXECUTED",
        ]
        assert query_of(responses.calls[1])["offset"] == ["2"]
        assert query_of(responses.calls[0])["zqlQuery"] == [
            build_execution_zql("Payments", "1.0")
        ]
