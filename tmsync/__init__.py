"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
TMSYNC - Test Management Sync
Reconciles projects, versions, test cases, cycles and executions from Jira,
Zephyr Scale and ZAPI into one canonical relational model.
"""

__version__ = "0.1.0"
