from datetime import date

import pytest

from vast_sync.exceptions import StoreError
from vast_sync.writer import chunked, write_in_batches


def _sales(n):
    return [
        {"sale_date": date(2025, 9, 1), "promoter_name": f"P{i}", "store_id": "S1", "status": "ACC"}
        for i in range(n)
    ]


class FlakyCollection:
    """Accepts chunks until ``fail_on`` (1-based), then raises."""

    name = "sales"

    def __init__(self, fail_on):
        self.fail_on = fail_on
        self.calls = 0
        self.rows = []

    def insert_many(self, records):
        self.calls += 1
        if self.calls == self.fail_on:
            raise StoreError("insert failed", table=self.name)
        self.rows.extend(records)
        return len(records)


def test_chunked_sizes():
    assert [len(c) for c in chunked(list(range(7)), 3)] == [3, 3, 1]
    assert list(chunked([], 3)) == []
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_writes_every_chunk(db):
    result = write_in_batches(db.sales, _sales(2500), chunk_size=1000)

    assert result.complete
    assert result.inserted == 2500
    assert result.chunks_written == 3
    assert result.failed_chunk is None
    assert db.sales.count() == 2500


def test_stops_at_first_failed_chunk():
    coll = FlakyCollection(fail_on=2)
    result = write_in_batches(coll, _sales(25), chunk_size=10)

    assert not result.complete
    assert result.inserted == 10
    assert result.last_successful_chunk == 1
    assert result.failed_chunk == 2
    assert "insert failed" in result.error
    assert coll.calls == 2
    assert len(coll.rows) == 10


def test_failure_in_first_chunk_has_no_successful_chunk():
    result = write_in_batches(FlakyCollection(fail_on=1), _sales(5), chunk_size=10)
    assert result.inserted == 0
    assert result.last_successful_chunk is None
    assert result.failed_chunk == 1


def test_empty_input_is_complete(db):
    result = write_in_batches(db.sales, [], chunk_size=1000)
    assert result.complete
    assert result.chunks_written == 0


def test_store_rejects_bad_rows(db):
    rows = _sales(3)
    rows[2]["promoter_name"] = None
    result = write_in_batches(db.sales, rows, chunk_size=2)

    assert result.inserted == 2
    assert result.failed_chunk == 2
    assert db.sales.count() == 2
