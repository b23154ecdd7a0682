"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""Translation of ZAPI (Zephyr for Jira) cycles and executions into canonical entities."""

from tmsync.domain.models import Cycle, Execution
from tmsync.source_models import ZapiCycle, ZapiExecution
from tmsync.translation import (
    ResolvedDependencies,
    require_record,
    status_key,
    user_key,
)


def execution_status_key(execution: ZapiExecution) -> str:
    return status_key(execution.execution_status, upper=True)


def execution_executor_key(execution: ZapiExecution) -> str:
    return user_key(execution.executed_by_user_name)


def translate_cycle(cycle: ZapiCycle, deps: ResolvedDependencies) -> Cycle:
    """Translate a ZAPI cycle of the resolved version; the name is kept as it is."""
    require_record(cycle, "ZAPI cycle")
    version = deps.require("version", cycle)
    return Cycle(
        id=cycle.id,
        version_id=version.id,
        name=cycle.name,
        start_date=cycle.start_date,
        end_date=cycle.end_date,
    )


def translate_execution(execution: ZapiExecution, deps: ResolvedDependencies) -> Execution:
    """Translate a ZAPI execution; every dependency must already be resolved."""
    require_record(execution, "ZAPI execution")
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
        created=execution.created_on,
        executed=execution.executed_on,
    )
