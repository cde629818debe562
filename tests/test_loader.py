import asyncio

import httpx
import pytest

from conftest import PIN_BASE, FakeRecordStore
from deed_explorer.errors import LoadAbandoned, TransportFailure
from deed_explorer.http_client import AsyncHttpClient
from deed_explorer.loader import Loader, join_url
from deed_explorer.records import EntityData, PinDocuments


DOCS_BODY = {
    "ADDRESSES": ["1 Main St"],
    "DOCS": [
        {
            "DOC_NUM": "2001234567",
            "DOC_TYPE": "WARRANTY DEED",
            "DATE_EXECUTED": "2020-01-02",
            "DATE_RECORDED": "2020-01-15",
            "DOC_URL": "https://example.invalid/doc/2001234567",
            "CONSIDERATION_AMOUNT": "$250,000",
            "GRANTEES": ["ACME HOLDINGS LLC"],
        }
    ],
}


def _pin_loader(store, **kwargs):
    http = AsyncHttpClient(client=store.client())
    return Loader(
        name="pin",
        fetch_json=http.get_json,
        url_for=lambda pin: join_url(PIN_BASE, pin, ".json"),
        parse=PinDocuments.from_json,
        empty=PinDocuments.empty,
        **kwargs,
    )


def test_join_url_keeps_pin_readable():
    assert join_url("https://cdn.test/pin", "12-34-567", ".json") == (
        "https://cdn.test/pin/12-34-567.json"
    )
    assert join_url(PIN_BASE, "ACME LLC.json") == "https://cdn.test/pin/ACME%20LLC.json"


def test_sequential_loads_fetch_once():
    store = FakeRecordStore({"/pin/A.json": (200, DOCS_BODY)})
    loader = _pin_loader(store)

    async def run():
        first = await loader.load("A")
        second = await loader.load("A")
        return first, second

    first, second = asyncio.run(run())
    assert first is second
    assert first.addresses == ("1 Main St",)
    assert first.docs[0].grantees == ("ACME HOLDINGS LLC",)
    assert store.count("/pin/A.json") == 1
    assert loader.fetches == 1


def test_concurrent_loads_share_one_fetch():
    store = FakeRecordStore({"/pin/A.json": (200, DOCS_BODY)}, delay=0.2)
    loader = _pin_loader(store)

    async def run():
        return await asyncio.gather(loader.load("A"), loader.load("A"))

    a, b = asyncio.run(run())
    assert a is b
    assert a.to_dict() == DOCS_BODY
    assert store.count("/pin/A.json") == 1
    assert loader.joins == 1
    assert not loader.in_flight.is_loading("A")


def test_many_concurrent_failures_share_empty_value():
    store = FakeRecordStore({"/pin/B.json": (500, "boom")}, delay=0.05)
    loader = _pin_loader(store)

    async def run():
        return await asyncio.gather(*[loader.load("B") for _ in range(8)])

    results = asyncio.run(run())
    assert all(r is results[0] for r in results)
    assert results[0] == PinDocuments.empty()
    assert store.count("/pin/B.json") == 1
    assert loader.joins == 7
    assert loader.failures == 1


def test_not_found_is_cached_empty():
    store = FakeRecordStore()
    loader = _pin_loader(store)

    async def run():
        first = await loader.load("12-34-567")
        second = await loader.load("12-34-567")
        return first, second

    first, second = asyncio.run(run())
    assert first.to_dict() == {"ADDRESSES": [], "DOCS": []}
    assert second is first
    assert store.count("/pin/12-34-567.json") == 1
    assert loader.failures == 0


@pytest.mark.parametrize(
    "entry",
    [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("timed out"),
        (503, "unavailable"),
        (200, "{not json"),
        (200, ["not", "an", "object"]),
        (200, {"ADDRESSES": "1 Main St", "DOCS": []}),
    ],
)
def test_failures_soft_fail_and_stay_cached(entry):
    store = FakeRecordStore({"/pin/C.json": entry})
    errors = []
    loader = _pin_loader(store, on_error=lambda key, exc: errors.append((key, exc)))

    async def run():
        return [await loader.load("C") for _ in range(3)]

    results = asyncio.run(run())
    assert all(r == PinDocuments.empty() for r in results)
    assert store.count("/pin/C.json") == 1
    assert len(errors) == 1
    assert errors[0][0] == "C"


def test_transport_failure_reported_to_error_hook():
    store = FakeRecordStore({"/pin/D.json": httpx.ConnectError("dns")})
    errors = []
    loader = _pin_loader(store, on_error=lambda key, exc: errors.append(exc))
    asyncio.run(loader.load("D"))
    assert isinstance(errors[0], TransportFailure)


def test_different_keys_fetch_independently():
    store = FakeRecordStore(
        {"/pin/A.json": (200, DOCS_BODY), "/pin/B.json": (200, {"ADDRESSES": [], "DOCS": []})},
        delay=0.05,
    )
    loader = _pin_loader(store)

    async def run():
        return await asyncio.gather(loader.load("A"), loader.load("B"), loader.load("A"))

    a, b, a2 = asyncio.run(run())
    assert a is a2
    assert a is not b
    assert store.count("/pin/A.json") == 1
    assert store.count("/pin/B.json") == 1


def test_waiter_gets_failure_when_fetch_is_abandoned():
    gate = {"block": True}
    calls = []

    async def fetch_json(url):
        calls.append(url)
        if gate["block"]:
            await asyncio.Event().wait()
        return DOCS_BODY

    loader = Loader(
        name="pin",
        fetch_json=fetch_json,
        url_for=lambda pin: join_url(PIN_BASE, pin, ".json"),
        parse=PinDocuments.from_json,
        empty=PinDocuments.empty,
    )

    async def run():
        owner = asyncio.ensure_future(loader.load("K"))
        await asyncio.sleep(0)
        waiter = asyncio.ensure_future(loader.load("K"))
        await asyncio.sleep(0)
        assert loader.in_flight.is_loading("K")

        owner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await owner
        with pytest.raises(LoadAbandoned):
            await waiter
        assert not loader.in_flight.is_loading("K")
        assert "K" not in loader.cache

        gate["block"] = False
        return await loader.load("K")

    record = asyncio.run(run())
    assert record.addresses == ("1 Main St",)
    assert len(calls) == 2


def test_cancelled_waiter_does_not_cancel_fetch():
    store = FakeRecordStore({"/pin/A.json": (200, DOCS_BODY)}, delay=0.1)
    loader = _pin_loader(store)

    async def run():
        owner = asyncio.ensure_future(loader.load("A"))
        await asyncio.sleep(0)
        waiter = asyncio.ensure_future(loader.load("A"))
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        return await owner

    record = asyncio.run(run())
    assert record.addresses == ("1 Main St",)
    assert "A" in loader.cache
    assert store.count("/pin/A.json") == 1


def test_deeply_nested_body_is_cached_empty():
    nested = "[" * 100000 + "]" * 100000
    store = FakeRecordStore({"/pin/DEEP.json": (200, nested)})
    loader = _pin_loader(store)

    async def run():
        first = await loader.load("DEEP")
        second = await loader.load("DEEP")
        return first, second

    first, second = asyncio.run(run())
    assert first == PinDocuments.empty()
    assert second is first
    assert store.count("/pin/DEEP.json") == 1
    assert loader.failures == 1


def test_infinite_entity_count_is_cached_empty():
    store = FakeRecordStore(
        {"/entity/inf.json": (200, '{"ASSOCIATED_PINS": ["A"], "COUNT": Infinity}')}
    )
    http = AsyncHttpClient(client=store.client())
    loader = Loader(
        name="entity",
        fetch_json=http.get_json,
        url_for=lambda filename: join_url("https://cdn.test/entity/", filename),
        parse=EntityData.from_json,
        empty=EntityData.empty,
    )

    assert asyncio.run(loader.load("inf.json")) == EntityData.empty()
    assert loader.failures == 1
    assert "inf.json" in loader.cache


def test_failing_error_hook_still_caches_empty():
    store = FakeRecordStore({"/pin/A.json": (500, "boom")})

    def hook(key, exc):
        raise RuntimeError("hook exploded")

    loader = _pin_loader(store, on_error=hook)

    async def run():
        first = await loader.load("A")
        second = await loader.load("A")
        return first, second

    first, second = asyncio.run(run())
    assert first == PinDocuments.empty()
    assert second is first
    assert store.count("/pin/A.json") == 1
    assert not loader.in_flight.is_loading("A")
