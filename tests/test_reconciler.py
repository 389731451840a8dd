from __future__ import annotations

import asyncio

import pytest

from fakes import FakeConnector, FakeReader, svg_uri, unreachable
from zircats.errors import ReconcileError
from zircats.reconciler import SvgReconciler
from zircats.store import SVGS


def _token_docs(db, token_id: str) -> list[dict]:
    return [d for d in db[SVGS].docs if d.get("tokenId") == token_id]


@pytest.mark.asyncio
async def test_pass_stores_decoded_svg_and_second_pass_is_noop(store, db) -> None:
    reader = FakeReader(
        {101: "data:image/svg+xml;base64,aGVsbG8=", 102: svg_uri("<svg>102</svg>")},
        order=[101, 102],
    )
    reconciler = SvgReconciler(FakeConnector(reader), store)

    first = await reconciler.reconcile()
    second = await reconciler.reconcile()

    assert first.connected and first.total_supply == 2
    assert first.inserted == ["101", "102"]
    assert _token_docs(db, "101")[0]["svg"] == "hello"
    assert second.inserted == []
    assert second.skipped == 2
    assert len(_token_docs(db, "101")) == 1
    assert len(db[SVGS].docs) == 2


@pytest.mark.asyncio
async def test_every_index_gets_a_record(store, db) -> None:
    ids = [7, 3, 1000000000000000000000, 42]
    reader = FakeReader({i: svg_uri(f"<svg>{i}</svg>") for i in ids}, order=ids)

    await SvgReconciler(FakeConnector(reader), store).reconcile()

    stored = {d["tokenId"] for d in db[SVGS].docs}
    assert stored == {str(i) for i in ids}


@pytest.mark.asyncio
async def test_unreachable_chain_skips_pass_without_side_effects(store, db) -> None:
    report = await SvgReconciler(FakeConnector(unreachable()), store).reconcile()

    assert report.connected is False
    assert report.inserted == []
    assert db[SVGS].docs == []
    assert "Skipped" in report.summary()


@pytest.mark.asyncio
async def test_one_bad_token_does_not_block_the_rest(store, db) -> None:
    reader = FakeReader(
        {
            1: svg_uri("<svg>1</svg>"),
            2: "data:image/svg+xml;base64",  # no comma
            3: RuntimeError("execution reverted"),
            4: svg_uri("<svg>4</svg>"),
        },
        order=[1, 2, 3, 4],
    )

    report = await SvgReconciler(FakeConnector(reader), store).reconcile()

    assert report.inserted == ["1", "4"]
    assert set(report.failed) == {1, 2}
    assert "execution reverted" in report.failed[2]
    assert {d["tokenId"] for d in db[SVGS].docs} == {"1", "4"}


@pytest.mark.asyncio
async def test_failed_token_is_retried_next_pass(store, db) -> None:
    reader = FakeReader({1: RuntimeError("timeout")}, order=[1])
    reconciler = SvgReconciler(FakeConnector(reader), store)

    assert (await reconciler.reconcile()).failed
    reader.uris[1] = svg_uri("<svg>ok</svg>")
    assert (await reconciler.reconcile()).inserted == ["1"]


@pytest.mark.asyncio
async def test_existing_token_is_not_fetched_again(store) -> None:
    await store.insert_reconciled("9", "<svg>old</svg>")
    # tokenURI would fail if called
    reader = FakeReader({9: RuntimeError("should not be called")}, order=[9])

    report = await SvgReconciler(FakeConnector(reader), store).reconcile()

    assert report.skipped == 1
    assert report.failed == {}


@pytest.mark.asyncio
async def test_unreadable_total_supply_fails_the_pass(store) -> None:
    reader = FakeReader(supply_error=RuntimeError("bad response"))

    with pytest.raises(ReconcileError):
        await SvgReconciler(FakeConnector(reader), store).reconcile()


@pytest.mark.asyncio
async def test_overlapping_passes_never_duplicate(store, db) -> None:
    ids = list(range(1, 6))
    reader = FakeReader({i: svg_uri(f"<svg>{i}</svg>") for i in ids}, order=ids)
    reconciler = SvgReconciler(FakeConnector(reader), store)

    await asyncio.gather(reconciler.reconcile(), reconciler.reconcile())

    for i in ids:
        assert len(_token_docs(db, str(i))) == 1


@pytest.mark.asyncio
async def test_run_forever_keeps_going_after_failed_passes(store) -> None:
    connector = FakeConnector(FakeReader(supply_error=RuntimeError("boom")))
    reconciler = SvgReconciler(connector, store, interval=0.001)

    task = asyncio.create_task(reconciler.run_forever())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert connector.attempts >= 2
