"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Batching strategies for partitioned store writes.

Pending merges are committed in partitions so that a failure only rolls back
the partition it happened in. The strategies here decide how the staged work is
cut into those partitions.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger("tmsync.batch_strategies")


class BatchStrategy(Generic[T], ABC):
    """
    Abstract base class for batch creation strategies.

    All batching strategies must implement the create_batches method to
    divide a sequence of entities into batches according to their own logic.
    """

    @abstractmethod
    def create_batches(self, entities: Sequence[T]) -> list[list[T]]:
        """
        Create batches from a sequence of entities.

        Args:
            entities: Entities to batch

        Returns:
            List of batches, each preserving the input order
        """


class FixedSizeBatchStrategy(BatchStrategy[T]):
    """
    Batch strategy that cuts the input into consecutive batches of one size.

    The last batch holds the remainder and may be smaller.
    """

    def __init__(self, batch_size: int):
        if batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.batch_size = batch_size

    def create_batches(self, entities: Sequence[T]) -> list[list[T]]:
        batches = create_batches(list(entities), batch_size=self.batch_size)
        logger.debug(
            f"Created {len(batches)} batches of up to {self.batch_size} "
            f"from {len(entities)} entities"
        )
        return batches


def create_batches(entities: list[T], batch_size: int | None = None) -> list[list[T]]:
    """
    Create batches from a list of entities, keeping their order.

    Args:
        entities: List of entities to batch
        batch_size: Fixed batch size (if None, everything lands in one batch)

    Returns:
        List of batches
    """
    if not entities:
        return []

    ordered = list(entities)
    if not batch_size:
        return [ordered]
    return [ordered[i : i + batch_size] for i in range(0, len(ordered), batch_size)]
