from unittest.mock import AsyncMock

import pytest

from dynamo_archive.core.models import Page
from dynamo_archive.core.scanner import TableScanner
from dynamo_archive.exceptions import TransientStoreError
from dynamo_archive.tests.helpers.fakes import FakeTableStore, make_items

KEY_A = {"id": {"S": "a"}}
KEY_B = {"id": {"S": "b"}}


@pytest.mark.asyncio
async def test_scan_follows_continuation_keys_until_exhausted() -> None:
    store = AsyncMock()
    store.scan.side_effect = [
        Page(items=make_items(2), last_evaluated_key=KEY_A),
        Page(items=make_items(2), last_evaluated_key=KEY_B),
        Page(items=make_items(1), last_evaluated_key=None),
    ]
    scanner = TableScanner(store, "users", limit=2)

    pages = [page async for page in scanner.pages()]

    assert len(pages) == 3
    assert store.scan.await_count == 3
    start_keys = [call.kwargs["exclusive_start_key"] for call in store.scan.await_args_list]
    assert start_keys == [None, KEY_A, KEY_B]
    assert scanner.items_fetched == 5


@pytest.mark.asyncio
async def test_scan_keeps_the_initial_limit() -> None:
    store = FakeTableStore()
    store.add_table("users", make_items(7))
    scanner = TableScanner(store, "users", limit=3)

    items = [item async for item in scanner.items()]

    assert len(items) == 7
    assert [call["limit"] for call in store.scan_calls] == [3, 3, 3]


@pytest.mark.asyncio
async def test_empty_table_yields_one_empty_page() -> None:
    store = FakeTableStore()
    store.add_table("users")

    pages = [page async for page in TableScanner(store, "users", limit=10).pages()]

    assert len(pages) == 1
    assert pages[0].items == []


@pytest.mark.asyncio
async def test_segmented_scan_reads_every_item_once() -> None:
    store = FakeTableStore()
    store.add_table("users", make_items(20))
    scanner = TableScanner(store, "users", limit=3, total_segments=4)

    items = [item async for item in scanner.items()]

    assert sorted(item["id"]["S"] for item in items) == sorted(
        item["id"]["S"] for item in make_items(20)
    )
    assert {call["segment"] for call in store.scan_calls} == {0, 1, 2, 3}
    assert {call["total_segments"] for call in store.scan_calls} == {4}


@pytest.mark.asyncio
async def test_scan_error_reaches_the_caller() -> None:
    store = FakeTableStore()
    store.add_table("users", make_items(10))
    store.scan_errors[1] = TransientStoreError("throttled")
    scanner = TableScanner(store, "users", limit=4)

    with pytest.raises(TransientStoreError):
        async for _ in scanner.pages():
            pass


@pytest.mark.asyncio
async def test_scanner_cannot_be_restarted() -> None:
    store = FakeTableStore()
    store.add_table("users")
    scanner = TableScanner(store, "users", limit=1)
    async for _ in scanner.pages():
        pass

    with pytest.raises(RuntimeError):
        async for _ in scanner.pages():
            pass


def test_scanner_rejects_invalid_limit() -> None:
    with pytest.raises(ValueError):
        TableScanner(FakeTableStore(), "users", limit=0)
