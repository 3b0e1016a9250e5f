"""Supabase-backed job store tests against a recording fake client."""

import copy
from datetime import datetime
from types import SimpleNamespace

import pytest

from genstudio.jobs.models import GenerationJob, JobStatus, MediaAsset
from genstudio.jobs.store import (
    ASSETS_TABLE,
    JOBS_TABLE,
    SupabaseJobStore,
    _parse_ts,
    _to_column,
)

CREATED_AT = "2026-01-02T03:04:05.123456+00:00"


class FakeQuery:
    """Evaluates the PostgREST-style builder chain against in-memory rows."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []
        self.op = None
        self.payload = None
        self.columns = "*"
        self.filters = []
        self.max_rows = None

    def _record(self, name, *args):
        self.calls.append((name, args))
        return self

    def select(self, columns):
        self.op, self.columns = "select", columns
        return self._record("select", columns)

    def insert(self, row):
        self.op, self.payload = "insert", copy.deepcopy(row)
        return self._record("insert", row)

    def update(self, values):
        self.op, self.payload = "update", copy.deepcopy(values)
        return self._record("update", values)

    def delete(self):
        self.op = "delete"
        return self._record("delete")

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self._record("eq", column, value)

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self._record("in_", column, list(values))

    def lt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] < value)
        return self._record("lt", column, value)

    def limit(self, n):
        self.max_rows = n
        return self._record("limit", n)

    def execute(self):
        self.client.log.append((self.table, self.op, self.calls))
        rows = self.client.tables[self.table]
        matched = [row for row in rows if all(f(row) for f in self.filters)]

        if self.op == "insert":
            row = dict(self.payload)
            self.client.next_id += 1
            row.setdefault("id", f"{self.table}-{self.client.next_id}")
            row.setdefault("created_at", CREATED_AT)
            rows.append(row)
            return SimpleNamespace(data=[copy.deepcopy(row)])
        if self.op == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=copy.deepcopy(matched))
        if self.op == "delete":
            for row in matched:
                rows.remove(row)
            return SimpleNamespace(data=copy.deepcopy(matched))

        result = []
        for row in matched[: self.max_rows]:
            out = copy.deepcopy(row)
            if "media_assets(metadata)" in self.columns:
                asset = next(
                    a for a in self.client.tables[ASSETS_TABLE] if a["id"] == row["media_asset_id"]
                )
                out["media_assets"] = {"metadata": copy.deepcopy(asset["metadata"])}
            result.append(out)
        return SimpleNamespace(data=result)


class FakeSupabaseClient:
    def __init__(self):
        self.tables = {ASSETS_TABLE: [], JOBS_TABLE: []}
        self.log = []
        self.next_id = 0

    def table(self, name):
        return FakeQuery(self, name)

    def last_write(self, table):
        """Builder calls of the most recent update on ``table``."""
        for logged_table, op, calls in reversed(self.log):
            if logged_table == table and op == "update":
                return calls
        raise AssertionError(f"no update on {table}")


@pytest.fixture
def fake_client():
    return FakeSupabaseClient()


@pytest.fixture
def supabase_store(fake_client):
    return SupabaseJobStore(fake_client)


async def _seed(supabase_store):
    asset = await supabase_store.create_asset(
        MediaAsset(
            user_id="user-1",
            app_id="app-1",
            prompt="a red kite",
            provider="lovable-video",
            metadata={
                "seed": 1234,
                "jobId": "pj-1",
                "providerPayload": {"prompt": "a red kite", "seed": 1234},
            },
        )
    )
    job = await supabase_store.create_job(
        GenerationJob(asset_id=asset.id, provider_job_id="pj-1", seed=1234)
    )
    return asset, job


@pytest.mark.asyncio
async def test_rows_round_trip_through_metadata(supabase_store, fake_client):
    asset, job = await _seed(supabase_store)

    (asset_row,) = fake_client.tables[ASSETS_TABLE]
    assert asset_row["user_id"] == "user-1"
    assert asset_row["status"] == "pending"
    (job_row,) = fake_client.tables[JOBS_TABLE]
    assert job_row == {
        "id": job.id,
        "media_asset_id": asset.id,
        "status": "pending",
        "progress": 0,
        "provider_job_id": "pj-1",
        "created_at": CREATED_AT,
    }
    assert job.created_at == datetime(2026, 1, 2, 3, 4, 5, 123456)

    await supabase_store.record_dispatch(job.id, "pred-9")
    loaded = await supabase_store.get_job(job.id)

    assert loaded.asset_id == asset.id
    assert loaded.seed == 1234
    assert loaded.request_payload == {"prompt": "a red kite", "seed": 1234}
    assert loaded.provider_handle == "pred-9"
    assert loaded.dispatched_at is not None
    assert loaded.status == JobStatus.PENDING

    stored_asset = await supabase_store.get_asset(asset.id)
    assert stored_asset.metadata["jobId"] == "pj-1"
    assert stored_asset.metadata["providerHandle"] == "pred-9"


@pytest.mark.asyncio
async def test_missing_rows_read_as_none(supabase_store):
    assert await supabase_store.get_job("nope") is None
    assert await supabase_store.get_asset("nope") is None


@pytest.mark.asyncio
async def test_transition_filters_on_legal_predecessors(supabase_store, fake_client):
    _, job = await _seed(supabase_store)

    started = datetime(2026, 1, 1, 12, 0, 0)
    assert await supabase_store.transition(
        job.id, JobStatus.PROCESSING, started_at=started, progress=10
    )
    assert fake_client.last_write(JOBS_TABLE) == [
        ("update", ({"status": "processing", "started_at": "2026-01-01T12:00:00Z", "progress": 10},)),
        ("eq", ("id", job.id)),
        ("in_", ("status", ["pending"])),
    ]

    # A second start is rejected by the filter, not by a read
    assert await supabase_store.transition(job.id, JobStatus.PROCESSING) is False

    assert await supabase_store.transition(job.id, JobStatus.COMPLETED, progress=100)
    assert await supabase_store.transition(job.id, JobStatus.FAILED, error_message="late") is False
    assert fake_client.last_write(JOBS_TABLE)[-1] == ("in_", ("status", ["pending", "processing"]))

    loaded = await supabase_store.get_job(job.id)
    assert loaded.status == JobStatus.COMPLETED
    assert loaded.error_message is None
    assert loaded.started_at == started


@pytest.mark.asyncio
async def test_update_progress_only_raises_while_processing(supabase_store, fake_client):
    _, job = await _seed(supabase_store)
    assert await supabase_store.update_progress(job.id, 40) is False

    await supabase_store.transition(job.id, JobStatus.PROCESSING, progress=10)
    assert await supabase_store.update_progress(job.id, 40)
    assert fake_client.last_write(JOBS_TABLE) == [
        ("update", ({"progress": 40},)),
        ("eq", ("id", job.id)),
        ("eq", ("status", "processing")),
        ("lt", ("progress", 40)),
    ]
    assert await supabase_store.update_progress(job.id, 30) is False
    assert await supabase_store.update_progress(job.id, 40) is False
    assert (await supabase_store.get_job(job.id)).progress == 40


@pytest.mark.asyncio
async def test_mirror_asset_is_forward_only_and_merges_metadata(supabase_store, fake_client):
    asset, _ = await _seed(supabase_store)

    assert await supabase_store.mirror_asset(asset.id, JobStatus.PROCESSING)
    assert fake_client.last_write(ASSETS_TABLE) == [
        ("update", ({"status": "processing"},)),
        ("eq", ("id", asset.id)),
        ("in_", ("status", ["pending"])),
    ]

    assert await supabase_store.mirror_asset(
        asset.id,
        JobStatus.COMPLETED,
        file_url="https://cdn.test/kite.mp4",
        metadata={"completedAt": "2026-01-01T12:01:00Z"},
    )
    assert fake_client.last_write(ASSETS_TABLE)[-1] == ("in_", ("status", ["pending", "processing"]))
    assert await supabase_store.mirror_asset(asset.id, JobStatus.FAILED) is False

    stored = await supabase_store.get_asset(asset.id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.file_url == "https://cdn.test/kite.mp4"
    assert stored.metadata["seed"] == 1234
    assert stored.metadata["completedAt"] == "2026-01-01T12:01:00Z"


@pytest.mark.asyncio
async def test_delete_asset(supabase_store, fake_client):
    asset, _ = await _seed(supabase_store)
    fake_client.tables[JOBS_TABLE].clear()
    await supabase_store.delete_asset(asset.id)
    assert fake_client.tables[ASSETS_TABLE] == []


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        ("", None),
        ("2026-01-02T03:04:05Z", datetime(2026, 1, 2, 3, 4, 5)),
        ("2026-01-02T05:04:05+02:00", datetime(2026, 1, 2, 3, 4, 5)),
        ("2026-01-02T03:04:05", datetime(2026, 1, 2, 3, 4, 5)),
    ],
)
def test_parse_ts_returns_naive_utc(value, expected):
    assert _parse_ts(value) == expected


def test_to_column_marks_naive_datetimes_as_utc():
    assert _to_column(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05Z"
    assert _to_column(10) == 10
