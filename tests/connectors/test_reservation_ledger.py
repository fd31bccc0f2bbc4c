import asyncio

import pytest

from connectors.reservation_ledger import ReservationLedger
from factories import day, reserve
from models.enums import ReservationStatus
from utils.errors import ConcurrencyConflict, InvalidArgument, NotFound


@pytest.mark.asyncio
async def test_query_overlapping_half_open():
    ledger = ReservationLedger()
    await reserve(ledger, "tent", 1, day(3), day(5))

    assert len(await ledger.query_overlapping("tent", day(4), day(6))) == 1
    assert len(await ledger.query_overlapping("tent", day(0), day(4))) == 1
    # Touching ranges do not overlap
    assert await ledger.query_overlapping("tent", day(5), day(7)) == []
    assert await ledger.query_overlapping("tent", day(1), day(3)) == []
    # Other listings are not affected
    assert await ledger.query_overlapping("kayak", day(3), day(5)) == []


@pytest.mark.asyncio
async def test_query_overlapping_finds_long_reservation_starting_early():
    ledger = ReservationLedger()
    await reserve(ledger, "tent", 1, day(0), day(30))
    await reserve(ledger, "tent", 1, day(10), day(11))

    found = await ledger.query_overlapping("tent", day(20), day(21))
    assert [r.end for r in found] == [day(30)]


@pytest.mark.asyncio
async def test_query_overlapping_rejects_empty_range():
    ledger = ReservationLedger()
    with pytest.raises(InvalidArgument):
        await ledger.query_overlapping("tent", day(2), day(2))


@pytest.mark.asyncio
async def test_query_overlapping_status_filter():
    ledger = ReservationLedger()
    rid = await reserve(ledger, "tent", 1, day(3), day(5))
    await ledger.cancel(rid)

    assert await ledger.query_overlapping("tent", day(3), day(5)) == []
    cancelled = await ledger.query_overlapping("tent", day(3), day(5), statuses=["cancelled"])
    assert [r.reservation_id for r in cancelled] == [rid]


@pytest.mark.asyncio
async def test_staged_writes_invisible_until_commit():
    ledger = ReservationLedger()
    async with ledger.transaction(["tent"]) as txn:
        txn.create("tent", "order-1", 2, day(1), day(2))
        assert await ledger.query_overlapping("tent", day(1), day(2)) == []
        # The transaction itself sees its staged write
        assert len(txn.query_overlapping("tent", day(1), day(2))) == 1

    assert len(await ledger.query_overlapping("tent", day(1), day(2))) == 1
    assert len(ledger) == 1


@pytest.mark.asyncio
async def test_transaction_discards_writes_on_error():
    ledger = ReservationLedger()
    committed = []

    with pytest.raises(RuntimeError, match="boom"):
        async with ledger.transaction(["tent"]) as txn:
            txn.create("tent", "order-1", 1, day(1), day(2))
            txn.after_commit(lambda: committed.append(True))
            raise RuntimeError("boom")

    assert len(ledger) == 0
    assert committed == []
    # The lock was released
    async with ledger.transaction(["tent"]):
        pass


@pytest.mark.asyncio
async def test_after_commit_runs_with_writes_visible():
    ledger = ReservationLedger()
    seen = []

    async with ledger.transaction(["tent"]) as txn:
        txn.create("tent", "order-1", 1, day(1), day(2))
        txn.after_commit(lambda: seen.append(len(ledger)))

    assert seen == [1]


@pytest.mark.asyncio
async def test_listeners_hear_each_touched_listing():
    ledger = ReservationLedger()
    touched = []
    ledger.add_listener(touched.append)

    tent_res = await reserve(ledger, "tent", 1, day(1), day(3))
    assert touched == ["tent"]

    async with ledger.transaction(["kayak", "tent"]) as txn:
        txn.create("kayak", "ord-2", 1, day(1), day(2))
        txn.cancel(tent_res)
    assert touched == ["tent", "kayak", "tent"]

    await ledger.set_status(tent_res, ReservationStatus.RETURNED)
    assert touched[3:] == ["tent"]
    # The repeat cancel commits nothing
    await ledger.cancel(tent_res)
    await ledger.cancel(tent_res)
    assert touched[3:] == ["tent", "tent"]


@pytest.mark.asyncio
async def test_listeners_skip_empty_or_failed_transactions():
    ledger = ReservationLedger()
    touched = []
    ledger.add_listener(touched.append)

    async with ledger.transaction(["tent"]):
        pass
    with pytest.raises(RuntimeError):
        async with ledger.transaction(["tent"]) as txn:
            txn.create("tent", "ord-1", 1, day(1), day(2))
            raise RuntimeError("boom")

    assert touched == []


@pytest.mark.asyncio
async def test_transaction_scope_is_enforced():
    ledger = ReservationLedger()
    async with ledger.transaction(["tent"]) as txn:
        with pytest.raises(InvalidArgument):
            txn.create("kayak", "order-1", 1, day(1), day(2))
    with pytest.raises(RuntimeError):
        txn.create("tent", "order-1", 1, day(1), day(2))


@pytest.mark.asyncio
async def test_transaction_requires_listings():
    ledger = ReservationLedger()
    with pytest.raises(InvalidArgument):
        async with ledger.transaction([]):
            pass


@pytest.mark.asyncio
async def test_create_rejects_bad_reservation():
    ledger = ReservationLedger()
    async with ledger.transaction(["tent"]) as txn:
        with pytest.raises(InvalidArgument):
            txn.create("tent", "order-1", 0, day(1), day(2))
        with pytest.raises(InvalidArgument):
            txn.create("tent", "order-1", 1, day(2), day(1))


@pytest.mark.asyncio
async def test_lock_timeout_raises_concurrency_conflict():
    ledger = ReservationLedger(lock_timeout=0.05)
    async with ledger.transaction(["tent"]):
        with pytest.raises(ConcurrencyConflict):
            async with ledger.transaction(["tent"]):
                pass


@pytest.mark.asyncio
async def test_transactions_on_different_listings_do_not_block():
    ledger = ReservationLedger(lock_timeout=0.05)
    async with ledger.transaction(["tent"]):
        async with ledger.transaction(["kayak"]) as txn:
            txn.create("kayak", "order-1", 1, day(1), day(2))
    assert len(ledger) == 1


@pytest.mark.asyncio
async def test_overlapping_lock_sets_serialise():
    ledger = ReservationLedger()
    order = []

    async def worker(name, listings):
        async with ledger.transaction(listings):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a", ["tent", "kayak"]), worker("b", ["kayak", "tent"]))
    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


@pytest.mark.asyncio
async def test_cancel_is_idempotent(caplog):
    ledger = ReservationLedger()
    rid = await reserve(ledger, "tent", 1, day(1), day(2))

    with caplog.at_level("INFO"):
        first = await ledger.cancel(rid)
        second = await ledger.cancel(rid)

    assert first.status == ReservationStatus.CANCELLED
    assert second.status == ReservationStatus.CANCELLED
    assert caplog.text.count(f"Reservation {rid} cancelled") == 1
    assert await ledger.query_overlapping("tent", day(1), day(2)) == []


@pytest.mark.asyncio
async def test_cancel_unknown_reservation():
    ledger = ReservationLedger()
    with pytest.raises(NotFound):
        await ledger.cancel("missing")


@pytest.mark.asyncio
async def test_set_status_and_lookups():
    ledger = ReservationLedger()
    rid = await reserve(ledger, "tent", 2, day(1), day(2), order_id="order-9")

    reservation = await ledger.set_status(rid, ReservationStatus.ACTIVE)
    assert reservation.status == ReservationStatus.ACTIVE
    assert (await ledger.get(rid)).qty == 2
    assert [r.reservation_id for r in await ledger.for_order("order-9")] == [rid]
    assert await ledger.for_order("other") == []


@pytest.mark.asyncio
async def test_transaction_sees_pending_status_change():
    ledger = ReservationLedger()
    rid = await reserve(ledger, "tent", 1, day(1), day(2))

    async with ledger.transaction(["tent"]) as txn:
        assert txn.cancel(rid) is True
        assert txn.query_overlapping("tent", day(1), day(2)) == []
        assert txn.cancel(rid) is False
        # Committed state untouched until exit
        assert (await ledger.get(rid)).status == ReservationStatus.CONFIRMED

    assert (await ledger.get(rid)).status == ReservationStatus.CANCELLED
