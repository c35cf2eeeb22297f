"""
Batched writer: insert large record sets in bounded chunks.

The first failing chunk stops the run. Rows from earlier chunks stay
committed, so the result reports how far the write got rather than rolling
anything back.
"""

import logging
from dataclasses import dataclass

from .db.store import Collection
from .exceptions import StoreError

logger = logging.getLogger(__name__)


@dataclass
class BatchWriteResult:
    """Outcome of a chunked insert. Chunk numbers are 1-based."""

    table: str
    total: int
    chunk_size: int
    inserted: int = 0
    chunks_written: int = 0
    failed_chunk: int | None = None
    error: str | None = None

    @property
    def complete(self) -> bool:
        return self.failed_chunk is None and self.inserted == self.total

    @property
    def last_successful_chunk(self) -> int | None:
        return self.chunks_written or None


def chunked(records: list[dict], size: int):
    """Yield successive slices of at most ``size`` records."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(records), size):
        yield records[start:start + size]


def write_in_batches(
    collection: Collection,
    records: list[dict],
    chunk_size: int = 1000,
) -> BatchWriteResult:
    """Insert ``records`` chunk by chunk, stopping at the first failure."""
    result = BatchWriteResult(table=collection.name, total=len(records), chunk_size=chunk_size)

    for number, chunk in enumerate(chunked(records, chunk_size), start=1):
        try:
            result.inserted += collection.insert_many(chunk)
        except StoreError as exc:
            result.failed_chunk = number
            result.error = str(exc)
            logger.error(
                "Chunk %d of %s failed after %d rows inserted: %s",
                number, collection.name, result.inserted, exc,
            )
            break
        result.chunks_written = number
        logger.info("Inserted chunk %d into %s: %d records", number, collection.name, len(chunk))

    logger.info(
        "Wrote %d/%d records to %s in %d chunks",
        result.inserted, result.total, collection.name, result.chunks_written,
    )
    return result
