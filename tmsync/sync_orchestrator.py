"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Synchronization orchestrators.

A synchronization run is split into sync units (all test cases of a project,
one test run, one ZAPI version, one Jira issue type). Units run on a bounded
thread pool; inside a unit the work is sequential and follows the dependency
order Project, Version, Item, Cycle, User and Status, Execution:

    FETCH_SOURCE -> RESOLVE_DEPENDENCIES -> TRANSLATE -> STAGE_FOR_MERGE -> COMMIT

Staged entities are committed in partitions of ``SyncConfig.partition_size``.
An execution whose item cannot be read, even after retrying, is skipped and
counted in ``SyncReport.skipped``. Any other error fails the unit, is recorded
in the report and leaves the unit's last sync time untouched so that the next
run picks its records up again.
"""

import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from tmsync import jira_translator, scale_translator, zapi_translator
from tmsync.core.config import SyncConfig
from tmsync.core.db_manager import CanonicalStore, PartitionCommitError
from tmsync.core.logging import ErrorTracker, correlation_id, get_logger, log_operation
from tmsync.domain.models import (
    UNSET,
    CanonicalModel,
    EntityKind,
    Found,
    NotFound,
    Project,
    Version,
)
from tmsync.fetching import MISSING, fetch_with_retry
from tmsync.identity_cache import IdentityCache
from tmsync.source_models import (
    JiraIssue,
    JiraProject,
    ScaleTestExecution,
    ScaleTestRun,
    ZapiExecution,
    ZapiProject,
    ZapiVersion,
)
from tmsync.sources import JiraSource, ScaleSource, ZapiSource
from tmsync.translation import (
    ResolvedDependencies,
    TranslationError,
    or_unset,
    project_key,
)

logger = get_logger("tmsync.sync_orchestrator")

SCALE_TEST_CASES_SYNC_KEY = "SCALE_TEST_CYCLES"
SCALE_RUN_SYNC_KEY_PREFIX = "SCALE_RUN_"
ZAPI_SYNC_KEY = "ZAPI"
JIRA_SYNC_KEY = "JIRA"
UNSCHEDULED_VERSION = "unscheduled"


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class SyncError(Exception):
    """Raised when a synchronization cannot start, e.g. an unknown project."""


@dataclass
class SyncReport:
    """
    Outcome of a synchronization run.

    Counters are updated by the worker threads of the run. ``committed_partitions``
    maps the label of every partitioned write to the indexes of its committed
    partitions, so a failed run can be retried for the remainder only.
    """

    source: str
    project: str
    fetched: int = 0
    merged: int = 0
    skipped: int = 0
    units: int = 0
    committed_partitions: dict[str, list[int]] = field(default_factory=dict)
    failed_units: list[str] = field(default_factory=list)
    failed_partition: int | None = None
    failing_key: Any = None
    cancelled: bool = False
    error: BaseException | None = None
    errors: list[BaseException] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.cancelled

    def count(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def add_committed(self, label: str, partitions: Iterable[int]) -> None:
        with self._lock:
            self.committed_partitions.setdefault(label, []).extend(partitions)

    def record_failure(self, unit_name: str, error: BaseException) -> None:
        with self._lock:
            self.failed_units.append(unit_name)
            self.errors.append(error)
            if self.error is None:
                self.error = error
                if isinstance(error, PartitionCommitError):
                    self.failed_partition = error.partition_index
                    self.failing_key = error.failing_key

    def raise_for_status(self) -> None:
        """Re-raise the first error of a failed run."""
        if self.error is not None:
            raise self.error

    def summary(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "project": self.project,
            "units": self.units,
            "fetched": self.fetched,
            "merged": self.merged,
            "skipped": self.skipped,
            "failed_units": list(self.failed_units),
            "cancelled": self.cancelled,
            "succeeded": self.succeeded,
        }


@dataclass
class SyncUnit:
    """
    A unit of work with its own last sync bookkeeping.

    ``work`` receives the time the unit was last synchronized (None for a full
    synchronization) and the report of the run.
    """

    name: str
    sync_key: str
    project_name: str
    work: Callable[[datetime | None, SyncReport], None]
    scope: str = ""


class Synchronizer:
    """Base class of the per-source synchronizers."""

    source_name = ""

    def __init__(
        self,
        store: CanonicalStore,
        config: SyncConfig | None = None,
        cache: IdentityCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the synchronizer.

        Args:
            store: Canonical store written to
            config: Sync settings; defaults apply when omitted
            cache: Identity cache, shared with other synchronizers if given
            sleep: Sleep function used between dependency read attempts
        """
        self.store = store
        self.config = config or SyncConfig()
        self.cache = cache or IdentityCache(store)
        self.sleep = sleep
        self.error_tracker = ErrorTracker(logger)
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop issuing source reads; staged work still gets committed."""
        logger.warning(f"Cancellation of {self.source_name} synchronization requested")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # Units

    def run_units(self, units: list[SyncUnit], report: SyncReport) -> None:
        """Run units on the worker pool and wait for all of them."""
        if not units:
            return
        workers = min(self.config.worker_count, len(units))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"tmsync-{self.source_name}"
        ) as executor:
            futures = {executor.submit(self._run_unit, unit, report): unit for unit in units}
            for future in as_completed(futures):
                future.result()

    def _run_unit(self, unit: SyncUnit, report: SyncReport) -> bool:
        if self.cancelled:
            report.cancelled = True
            logger.info(f"Skipping {unit.name}: run cancelled")
            return False

        started = utc_now()
        context = {"source": self.source_name, "unit": unit.name, "project": unit.project_name}
        with correlation_id():
            try:
                last_sync = self.store.get_last_sync(unit.sync_key, unit.project_name, unit.scope)
                with log_operation(logger, f"sync unit {unit.name}", context=context):
                    unit.work(last_sync, report)
            except Exception as e:
                self.error_tracker.add_error(e, context=context, log=False)
                report.record_failure(unit.name, e)
                return False
            finally:
                report.count("units")

            if self.cancelled:
                report.cancelled = True
                logger.info(f"{unit.name} was cancelled; last sync time not recorded")
                return False
            self.store.update_last_sync(unit.sync_key, unit.project_name, started, unit.scope)
        return True

    # Shared steps

    def translate(self, translator: Callable[..., CanonicalModel], record: Any, *args) -> Any:
        """Call a translator, logging the source record when it fails."""
        try:
            return translator(record, *args)
        except Exception as e:
            dump = record.model_dump(mode="json") if hasattr(record, "model_dump") else record
            logger.error(
                f"Translation with {translator.__name__} failed: {e}",
                context={"source": self.source_name, "record": dump},
            )
            raise

    def commit(self, label: str, entities: list[CanonicalModel], report: SyncReport) -> list:
        """
        Merge staged entities in partitioned transactions and cache the results.

        Raises:
            PartitionCommitError: When a partition fails; earlier partitions stay committed
        """
        if not entities:
            return []
        partition_size = self.config.partition_size
        try:
            outcome = self.store.run_partitioned(
                entities,
                lambda session, entity: self.store.merge(entity, session=session),
                partition_size,
            )
        except PartitionCommitError as e:
            report.add_committed(label, e.committed_partitions)
            report.count("merged", len(e.committed_partitions) * partition_size)
            raise

        report.add_committed(label, outcome.committed_partitions)
        report.count("merged", len(outcome.results))
        for entity in outcome.results:
            self.cache.put(entity)
        logger.info(
            f"Committed {len(outcome.results)} entities for {label} "
            f"in {outcome.partition_count} partition(s)"
        )
        return outcome.results

    def resolve_value(self, kind: EntityKind, key: Any) -> Any:
        """Resolve a kind that is created on first reference."""
        resolution = self.cache.resolve(kind, key)
        if isinstance(resolution, NotFound):
            raise TranslationError(f"Could not resolve {kind.value} {key!r}")
        return resolution.value

    def resolve_project(self, name: str | None) -> Project:
        return self.resolve_value(EntityKind.PROJECT, project_key(name))

    def resolve_version(self, project: Project, name: str | None) -> Version:
        return self.resolve_value(EntityKind.VERSION, (project.id, or_unset(name)))

    def resolve_execution_actors(self, status_key: str, executor_key: str):
        status = self.resolve_value(EntityKind.EXECUTION_STATUS, status_key)
        executor = self.resolve_value(EntityKind.USER, executor_key)
        return status, executor

    def skip(self, report: SyncReport, record_key: Any, resolution: NotFound, what: str) -> None:
        """
        Count and log a record whose dependency cannot be read.

        The unit still records its last sync time, so incremental runs do not
        see the skipped record again; only a full synchronization picks it up.
        """
        report.count("skipped")
        logger.warning(
            f"Skipping {what} {record_key}: dependency {resolution.key!r} is {resolution.reason}; "
            "incremental runs will not retry it",
            context={"source": self.source_name, "record": record_key, "reason": resolution.reason},
        )

    def sync_jira_versions(
        self, jira: JiraSource, jira_project: JiraProject, project: Project, report: SyncReport
    ) -> list[Version]:
        """Merge the versions of a Jira project plus its sentinel version."""
        source_versions = jira.get_project_versions(jira_project.key)
        report.count("fetched", len(source_versions))
        deps = ResolvedDependencies(project=project)
        staged = [
            self.translate(jira_translator.translate_version, version, deps)
            for version in source_versions
        ]
        versions = self.commit(f"{project.name} versions", staged, report)
        unset = self.resolve_version(project, UNSET)
        return list({version.id: version for version in [*versions, unset]}.values())

    def new_report(self, project: str) -> SyncReport:
        return SyncReport(source=self.source_name, project=project)

    def finish(self, report: SyncReport) -> SyncReport:
        if self.cancelled:
            report.cancelled = True
        outcome = "completed" if report.succeeded else "did not complete"
        logger.info(
            f"{self.source_name} synchronization of {report.project} {outcome}",
            context={**report.summary(), "identity_cache": self.cache.stats()},
        )
        return report


class ScaleSynchronizer(Synchronizer):
    """
    Synchronizes a Zephyr Scale project.

    Projects and versions come from Jira. Test cases are committed as items
    first; every test run is then a unit of its own that commits its cycle and
    executions. Items referenced by executions but not yet in the store are
    read from Scale one by one, with retries, and filed under the project
    their own ``projectKey`` names.
    """

    source_name = "scale"

    def __init__(
        self,
        scale: ScaleSource,
        jira: JiraSource,
        store: CanonicalStore,
        config: SyncConfig | None = None,
        cache: IdentityCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(store, config, cache, sleep)
        self.scale = scale
        self.jira = jira
        self._project_dependencies: dict[str, ResolvedDependencies] = {}
        self._project_lock = threading.Lock()

    def synchronize(self, jira_project_key: str) -> SyncReport:
        """Synchronize the test cases, test runs and executions of a project."""
        report = self.new_report(jira_project_key)
        with log_operation(logger, f"Scale synchronization of {jira_project_key}"):
            try:
                jira_project = self.jira.get_project(jira_project_key)
                if jira_project is None:
                    raise SyncError(f"Jira project {jira_project_key} does not exist")
                project = self.resolve_project(jira_project.name or jira_project.key)
                versions = self.sync_jira_versions(self.jira, jira_project, project, report)
            except Exception as e:
                self.error_tracker.add_error(e, context={"project": jira_project_key})
                report.record_failure(jira_project_key, e)
                return self.finish(report)

            deps = ResolvedDependencies(project=project, versions=versions)
            with self._project_lock:
                self._project_dependencies[jira_project.key.upper()] = deps
            case_unit = SyncUnit(
                name=f"{jira_project_key} test cases",
                sync_key=SCALE_TEST_CASES_SYNC_KEY,
                project_name=project.name,
                work=lambda last_sync, rep: self._sync_test_cases(
                    jira_project.key, deps, last_sync, rep
                ),
            )
            self.run_units([case_unit], report)
            if not report.succeeded:
                return self.finish(report)

            test_runs = self._list_test_runs(jira_project.key, report)
            units = [
                SyncUnit(
                    name=f"test run {test_run.key}",
                    sync_key=f"{SCALE_RUN_SYNC_KEY_PREFIX}{test_run.key.upper()}",
                    project_name=project.name,
                    work=self._run_work(test_run, deps),
                )
                for test_run in test_runs
            ]
            self.run_units(units, report)
        return self.finish(report)

    def _run_work(self, test_run: ScaleTestRun, deps: ResolvedDependencies):
        return lambda last_sync, report: self._sync_test_run(test_run, deps, last_sync, report)

    def _folders(self, folders: list[str]) -> list[str | None]:
        return list(folders) or [None]

    def _list_test_runs(self, jira_project_key: str, report: SyncReport) -> list[ScaleTestRun]:
        test_runs = {}
        for folder in self._folders(self.config.scale_test_run_folders):
            if self.cancelled:
                break
            for test_run in self.scale.list_test_runs(jira_project_key, folder):
                test_runs[test_run.key] = test_run
        report.count("fetched", len(test_runs))
        return list(test_runs.values())

    def _sync_test_cases(
        self,
        jira_project_key: str,
        deps: ResolvedDependencies,
        last_sync: datetime | None,
        report: SyncReport,
    ) -> None:
        staged = []
        for folder in self._folders(self.config.scale_test_case_folders):
            if self.cancelled:
                break
            for test_case in self.scale.list_test_cases(jira_project_key, folder):
                report.count("fetched")
                changed = test_case.updated_on or test_case.created_on
                if last_sync is not None and changed is not None and changed < last_sync:
                    continue
                staged.append(self.translate(scale_translator.translate_test_case, test_case, deps))
                if self.cancelled:
                    break
        self.commit(f"{jira_project_key} test cases", staged, report)

    def _fetch(self, read: Callable[[], Any], key: str) -> Found | NotFound:
        return fetch_with_retry(
            read,
            key,
            attempts=self.config.max_fetch_attempts,
            initial_delay=self.config.retry_initial_delay,
            backoff_factor=self.config.retry_backoff_factor,
            sleep=self.sleep,
        )

    def _load_item(self, kind: EntityKind, key: str, report: SyncReport):
        """Read a test case missing from the store and merge it under its own project."""
        found = self.store.find(kind, key)
        if isinstance(found, Found):
            return found
        if self.cancelled:
            return NotFound(key=key, reason="cancelled")
        fetched = self._fetch(lambda: self.scale.get_test_case(key), key)
        if isinstance(fetched, NotFound):
            return fetched
        test_case = fetched.value
        deps = self._case_dependencies(test_case.project_key, report)
        item = self.translate(scale_translator.translate_test_case, test_case, deps)
        logger.info(f"Fetched missing test case {key} from Scale into {deps.project.name}")
        return Found(self.store.merge(item))

    def _case_dependencies(
        self, jira_project_key: str | None, report: SyncReport
    ) -> ResolvedDependencies:
        """
        Project and versions a test case belongs to.

        A test case of another Jira project is filed under that project, whose
        versions are synchronized on first use. A blank or unknown project key
        files it under the ``UNSET`` project.
        """
        key = (jira_project_key or "").strip().upper()
        with self._project_lock:
            deps = self._project_dependencies.get(key)
            if deps is None:
                deps = self._load_project_dependencies(key, report)
                self._project_dependencies[key] = deps
            return deps

    def _load_project_dependencies(self, key: str, report: SyncReport) -> ResolvedDependencies:
        fetched = self._fetch(lambda: self.jira.get_project(key), key) if key else None
        if not isinstance(fetched, Found):
            logger.warning(
                f"Jira project {key!r} cannot be resolved; its test cases go to the "
                f"{UNSET} project",
                context={"source": self.source_name, "project": key},
            )
            project = self.resolve_project(None)
            return ResolvedDependencies(
                project=project, versions=[self.resolve_version(project, UNSET)]
            )
        jira_project = fetched.value
        project = self.resolve_project(jira_project.name or jira_project.key)
        versions = self.sync_jira_versions(self.jira, jira_project, project, report)
        return ResolvedDependencies(project=project, versions=versions)

    def _sync_test_run(
        self,
        test_run: ScaleTestRun,
        deps: ResolvedDependencies,
        last_sync: datetime | None,
        report: SyncReport,
    ) -> None:
        """
        Commit the cycle of a test run and its executions newer than ``last_sync``.

        Executions whose test case cannot be read are skipped. They are older than
        the next run's ``last_sync`` and stay out of the store until a full
        synchronization.
        """
        executions = [
            execution
            for execution in self.scale.list_executions(test_run.key)
            if execution.execution_date is None
            or last_sync is None
            or execution.execution_date > last_sync
        ]
        report.count("fetched", len(executions))

        resolved: list[tuple[ScaleTestExecution, Any]] = []
        for execution in executions:
            if self.cancelled:
                break
            resolution = self._resolve_item(execution, report)
            if isinstance(resolution, NotFound):
                self.skip(report, execution.id, resolution, "Scale execution")
                continue
            resolved.append((execution, resolution.value))

        version = scale_translator.match_run_version(test_run, deps.versions)
        if version is None:
            version = self.resolve_version(deps.project, UNSET)
        cycle = self.translate(
            scale_translator.translate_test_run, test_run, ResolvedDependencies(version=version)
        )
        (cycle,) = self.commit(f"test run {test_run.key} cycle", [cycle], report)

        staged = []
        for execution, item in resolved:
            status, executor = self.resolve_execution_actors(
                scale_translator.execution_status_key(execution),
                scale_translator.execution_executor_key(execution),
            )
            execution_deps = ResolvedDependencies(
                item=item, cycle=cycle, status=status, executor=executor
            )
            staged.append(
                self.translate(
                    scale_translator.translate_execution, test_run, execution, execution_deps
                )
            )
        self.commit(f"test run {test_run.key} executions", staged, report)

    def _resolve_item(self, execution: ScaleTestExecution, report: SyncReport):
        if not execution.test_case_key:
            return NotFound(key=None, reason=MISSING)
        return self.cache.resolve(
            EntityKind.ITEM,
            execution.test_case_key,
            loader=lambda kind, key: self._load_item(kind, key, report),
        )


class ZapiSynchronizer(Synchronizer):
    """
    Synchronizes Zephyr for Jira (ZAPI) projects.

    Every scheduled version of a project is a unit; it commits the version's
    cycles, then its executions. Items are expected to have been synchronized
    from Jira already; executions of unknown items are skipped.
    """

    source_name = "zapi"

    def __init__(
        self,
        zapi: ZapiSource,
        store: CanonicalStore,
        config: SyncConfig | None = None,
        cache: IdentityCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(store, config, cache, sleep)
        self.zapi = zapi

    def synchronize(self, project_name: str) -> SyncReport:
        """Synchronize the cycles and executions of a ZAPI project."""
        report = self.new_report(project_name)
        started = utc_now()
        with log_operation(logger, f"ZAPI synchronization of {project_name}"):
            try:
                zapi_project = self._find_project(project_name)
                project = self.resolve_project(zapi_project.name)
                versions = self._versions_to_sync(zapi_project, report)
            except Exception as e:
                self.error_tracker.add_error(e, context={"project": project_name})
                report.record_failure(project_name, e)
                return self.finish(report)

            units = [
                SyncUnit(
                    name=f"{zapi_project.name} version {version.name}",
                    sync_key=ZAPI_SYNC_KEY,
                    project_name=zapi_project.name,
                    scope=version.name,
                    work=self._version_work(zapi_project, project, version),
                )
                for version in versions
            ]
            self.run_units(units, report)

        if report.succeeded:
            self.store.update_last_sync(ZAPI_SYNC_KEY, zapi_project.name, started)
        return self.finish(report)

    def _find_project(self, project_name: str) -> ZapiProject:
        for zapi_project in self.zapi.get_projects():
            if zapi_project.name.lower() == project_name.lower():
                return zapi_project
        raise SyncError(f"ZAPI project {project_name} does not exist")

    def _versions_to_sync(self, zapi_project: ZapiProject, report: SyncReport) -> list[ZapiVersion]:
        versions = [
            version
            for version in self.zapi.get_project_versions(zapi_project)
            if UNSCHEDULED_VERSION not in version.name.lower()
        ]
        report.count("fetched", len(versions))
        last_sync = self.store.get_last_sync(ZAPI_SYNC_KEY, zapi_project.name)
        if last_sync is None:
            return versions

        active = {
            (execution.version_name or "").lower()
            for execution in self.zapi.search_executions(zapi_project.name, None, last_sync)
        }
        logger.info(
            f"{len(active)} version(s) of {zapi_project.name} have executions since {last_sync}"
        )
        return [version for version in versions if version.name.lower() in active]

    def _version_work(self, zapi_project: ZapiProject, project: Project, version: ZapiVersion):
        return lambda last_sync, report: self._sync_version(
            zapi_project, project, version, last_sync, report
        )

    def _belongs_to(self, execution: ZapiExecution, project_name: str, version_name: str) -> bool:
        return (execution.project_name or "").lower() == project_name.lower() and (
            execution.version_name or ""
        ).lower() == version_name.lower()

    def _sync_version(
        self,
        zapi_project: ZapiProject,
        project: Project,
        zapi_version: ZapiVersion,
        last_sync: datetime | None,
        report: SyncReport,
    ) -> None:
        version = self.resolve_version(project, zapi_version.name)

        cycles = self.zapi.get_cycles(zapi_project, zapi_version)
        report.count("fetched", len(cycles))
        deps = ResolvedDependencies(version=version)
        staged_cycles = [
            self.translate(zapi_translator.translate_cycle, cycle, deps) for cycle in cycles
        ]
        self.commit(f"{zapi_version.name} cycles", staged_cycles, report)

        staged = []
        for execution in self.zapi.search_executions(
            zapi_project.name, zapi_version.name, last_sync
        ):
            if self.cancelled:
                break
            report.count("fetched")
            if not self._belongs_to(execution, zapi_project.name, zapi_version.name):
                continue
            item = self._resolve(EntityKind.ITEM, execution.issue_key)
            if isinstance(item, NotFound):
                self.skip(report, execution.id, item, "ZAPI execution")
                continue
            cycle = self._resolve(EntityKind.CYCLE, execution.cycle_id)
            if isinstance(cycle, NotFound):
                self.skip(report, execution.id, cycle, "ZAPI execution")
                continue
            status, executor = self.resolve_execution_actors(
                zapi_translator.execution_status_key(execution),
                zapi_translator.execution_executor_key(execution),
            )
            execution_deps = ResolvedDependencies(
                item=item.value, cycle=cycle.value, status=status, executor=executor
            )
            staged.append(
                self.translate(zapi_translator.translate_execution, execution, execution_deps)
            )
        self.commit(f"{zapi_version.name} executions", staged, report)

    def _resolve(self, kind: EntityKind, key: str | None):
        if not key:
            return NotFound(key=key, reason=MISSING)
        return self.cache.resolve(kind, key)


class JiraSynchronizer(Synchronizer):
    """
    Synchronizes Jira issues as items.

    Every configured issue type is a unit with its own last sync time; only
    issues updated since then are read again.
    """

    source_name = "jira"

    def __init__(
        self,
        jira: JiraSource,
        store: CanonicalStore,
        config: SyncConfig | None = None,
        cache: IdentityCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(store, config, cache, sleep)
        self.jira = jira

    def synchronize(
        self, jira_project_key: str, issue_types: list[str] | None = None
    ) -> SyncReport:
        """Synchronize the issues of a project, one unit per issue type."""
        report = self.new_report(jira_project_key)
        issue_types = issue_types or self.config.jira_issue_types
        with log_operation(logger, f"Jira synchronization of {jira_project_key}"):
            try:
                jira_project = self.jira.get_project(jira_project_key)
                if jira_project is None:
                    raise SyncError(f"Jira project {jira_project_key} does not exist")
                project = self.resolve_project(jira_project.name or jira_project.key)
                self.sync_jira_versions(self.jira, jira_project, project, report)
            except Exception as e:
                self.error_tracker.add_error(e, context={"project": jira_project_key})
                report.record_failure(jira_project_key, e)
                return self.finish(report)

            units = [
                SyncUnit(
                    name=f"{jira_project.key} {issue_type} issues",
                    sync_key=JIRA_SYNC_KEY,
                    project_name=project.name,
                    scope=issue_type,
                    work=self._issue_type_work(jira_project, project, issue_type),
                )
                for issue_type in issue_types
            ]
            self.run_units(units, report)
        return self.finish(report)

    def _issue_type_work(self, jira_project: JiraProject, project: Project, issue_type: str):
        return lambda last_sync, report: self._sync_issues(
            jira_project, project, issue_type, last_sync, report
        )

    def _issue_project(self, issue: JiraIssue, project: Project) -> Project:
        """The project an issue belongs to; issues without one go to the ``UNSET`` project."""
        name = jira_translator.issue_project_key(issue)
        if name == project.name:
            return project
        return self.resolve_project(name)

    def _sync_issues(
        self,
        jira_project: JiraProject,
        project: Project,
        issue_type: str,
        last_sync: datetime | None,
        report: SyncReport,
    ) -> None:
        staged = []
        for issue in self.jira.search_issues(jira_project.key, issue_type, last_sync):
            if self.cancelled:
                break
            report.count("fetched")
            issue_project = self._issue_project(issue, project)
            versions = [
                self.resolve_version(issue_project, name)
                for name in jira_translator.issue_version_names(issue)
            ]
            deps = ResolvedDependencies(project=issue_project, versions=versions)
            staged.append(
                self.translate(
                    jira_translator.translate_issue, issue, deps, self.config.jira_fields_to_sync
                )
            )
        self.commit(f"{jira_project.key} {issue_type} issues", staged, report)
