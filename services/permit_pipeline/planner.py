"""
Batch-resumption planner for ID-based (eTRAKiT) portals.

Picks the batch an incremental run starts from, given the largest permit
number suffix already stored for a prefix. A batch that may only have been
partially scraped last time is scanned again; upserts make that idempotent.
"""

from typing import Optional

from .utils import logger


def batch_span(suffix_digits: int, sequence_digits: Optional[int] = None) -> int:
    """How many permit numbers one "begins with" batch covers."""
    if sequence_digits is None:
        sequence_digits = suffix_digits + 1
    return 10 ** max(sequence_digits - suffix_digits, 0)


def starting_batch_for(largest_suffix: Optional[int], suffix_digits: int,
                       sequence_digits: Optional[int] = None) -> int:
    """
    Resume point for a prefix.

    Examples (3-digit batches, 4-digit sequences, so 10 numbers per batch):
        None -> 0
        29   -> 3   (29 closes batch 2, move on)
        24   -> 2   (batch 2 may have more, re-scan it)
    """
    if largest_suffix is None:
        return 0

    span = batch_span(suffix_digits, sequence_digits)
    batch = largest_suffix // span
    if largest_suffix % span == span - 1:
        return batch + 1
    return batch


class BatchPlanner:
    """Reads the repository once per prefix, before extraction writes anything."""

    def __init__(self, repository):
        self.repository = repository

    def starting_batch(self, prefix: str, city: str, suffix_digits: int,
                       sequence_digits: Optional[int] = None) -> int:
        largest = self.repository.find_largest_suffix(prefix, city)
        batch = starting_batch_for(largest, suffix_digits, sequence_digits)
        if largest is None:
            logger.info(f"{city} {prefix}: no existing permits, starting at batch 0")
        else:
            logger.info(f"{city} {prefix}: largest existing suffix {largest}, starting at batch {batch}")
        return batch
