"""Tests for the shopping list and restock candidates."""

import asyncio
from datetime import timedelta

import pytest

from fridge_share.domain.errors import (
    ExpiryRequiredError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    NoValidSelectionError,
)
from fridge_share.domain.inventory import NewStockItem, StockItem
from fridge_share.domain.models import Fridge
from fridge_share.services.documents import to_iso
from fridge_share.services.shopping import (
    restock_threshold,
    shopping_candidates,
    summarize_candidates,
)
from tests.conftest import NOW, sign_up

MILK = "milk|pcs|none"


async def _fridge_with_milk(container, qty: float = 1, threshold: float = 2):
    await sign_up(container, "owner", display_name="Ann")
    created = await container.fridge_registry.create_fridge("owner", "Home")
    item_id = await container.inventory_service.add_item(
        created.fridge_id,
        "owner",
        NewStockItem(name="Milk", qty=qty, low_threshold=threshold),
    )
    return created.fridge_id, item_id


def _stock(item_id: str, name: str, qty: float, threshold: float, expiry=None):
    return StockItem(
        id=item_id,
        fridge_id="",
        name=name,
        qty=qty,
        unit="pcs",
        expire_date=expiry,
        low_threshold=threshold,
        barcode="",
        status="in_stock",
    )


@pytest.mark.parametrize(
    ("threshold", "expected"),
    [(0, 1), (0.4, 1), (1.4, 1), (2.5, 3), (4, 4)],
)
def test_restock_threshold(threshold, expected) -> None:
    assert restock_threshold(threshold) == expected


def test_promote_creates_pending_entries(container, store) -> None:
    async def scenario():
        fridge_id, item_id = await _fridge_with_milk(container)
        entry_ids = await container.shopping_service.promote_to_shopping(
            fridge_id, "owner", {MILK: 2, "gone|pcs|none": 1}
        )
        entries = await container.shopping_service.list_entries(fridge_id)
        return fridge_id, item_id, entry_ids, entries

    fridge_id, item_id, entry_ids, entries = asyncio.run(scenario())

    assert len(entry_ids) == 1
    entry = entries[0]
    assert (entry.name, entry.qty, entry.status, entry.source) == (
        "Milk",
        2,
        "pending",
        "fridge",
    )
    assert entry.fridge_name == "Home"
    assert entry.from_stock_id == item_id
    assert entry.target_expire_date is None
    assert store.data(f"fridges/{fridge_id}/stock/{item_id}")["qty"] == 1


def test_promote_clamps_quantity(container) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        await container.shopping_service.promote_to_shopping(
            fridge_id, "owner", {MILK: 20000}
        )
        return await container.shopping_service.list_entries(fridge_id)

    assert asyncio.run(scenario())[0].qty == 9999


@pytest.mark.parametrize("selections", [{}, {MILK: 0}, {MILK: -1}, {"x|pcs|none": 1}])
def test_promote_without_valid_selection(container, store, selections) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        commits = len(store.commits)
        with pytest.raises(NoValidSelectionError):
            await container.shopping_service.promote_to_shopping(
                fridge_id, "owner", selections
            )
        return commits

    commits = asyncio.run(scenario())

    assert len(store.commits) == commits


def test_seed_restock(container) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        await container.inventory_service.add_item(
            fridge_id, "owner", NewStockItem(name="Eggs", qty=6)
        )
        shopping = container.shopping_service
        with pytest.raises(InvalidInputError):
            await shopping.seed_restock(fridge_id, "owner", "eggs|pcs|none")
        with pytest.raises(NotFoundError):
            await shopping.seed_restock(fridge_id, "owner", "bread|pcs|none")
        await shopping.seed_restock(fridge_id, "owner", MILK)
        return await shopping.list_entries(fridge_id)

    entries = asyncio.run(scenario())

    assert [(entry.name, entry.qty, entry.source) for entry in entries] == [
        ("Milk", 1, "threshold")
    ]


def test_mark_purchased_requires_expiry(container, store) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        [entry_id] = await container.shopping_service.promote_to_shopping(
            fridge_id, "owner", {MILK: 2}
        )
        commits = len(store.commits)
        with pytest.raises(ExpiryRequiredError):
            await container.shopping_service.mark_purchased(
                fridge_id, "owner", entry_id
            )
        return fridge_id, entry_id, commits

    fridge_id, entry_id, commits = asyncio.run(scenario())

    assert len(store.commits) == commits
    assert store.data(f"fridges/{fridge_id}/shopping/{entry_id}") is not None
    assert len(store.paths(f"fridges/{fridge_id}/stock")) == 1


def test_mark_purchased_moves_entry_into_stock(container, store) -> None:
    expiry = NOW + timedelta(days=7)

    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container, threshold=2.5)
        shopping = container.shopping_service
        [entry_id] = await shopping.promote_to_shopping(
            fridge_id, "owner", {MILK: 3}
        )
        await shopping.set_target_expiry(fridge_id, "owner", entry_id, expiry)
        item_id = await shopping.mark_purchased(fridge_id, "owner", entry_id)
        history = await container.inventory_service.list_history(fridge_id)
        return fridge_id, entry_id, item_id, history

    fridge_id, entry_id, item_id, history = asyncio.run(scenario())

    stock = store.data(f"fridges/{fridge_id}/stock/{item_id}")
    assert stock["name"] == "Milk"
    assert stock["qty"] == 3
    assert stock["status"] == "in_stock"
    assert stock["lowThreshold"] == 3
    assert stock["expireDate"] == to_iso(expiry)
    assert store.data(f"fridges/{fridge_id}/shopping/{entry_id}") is None
    assert history[0].type == "add"
    assert history[0].source == "shopping"
    assert history[0].by_name == "Ann"


def test_mark_purchased_names_blank_entries(container, store) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        store.seed(
            f"fridges/{fridge_id}/shopping/e1",
            {
                "name": "",
                "qty": 1,
                "status": "pending",
                "targetExpireDate": to_iso(NOW),
            },
        )
        item_id = await container.shopping_service.mark_purchased(
            fridge_id, "owner", "e1"
        )
        return store.data(f"fridges/{fridge_id}/stock/{item_id}")

    stock = asyncio.run(scenario())

    assert stock["name"] == "Unnamed item"
    assert stock["lowThreshold"] == 1


def test_mark_purchased_unknown_entry(container) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        await container.shopping_service.mark_purchased(fridge_id, "owner", "nope")

    with pytest.raises(NotFoundError):
        asyncio.run(scenario())


def test_concurrent_purchase_adds_stock_once(container, store) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        shopping = container.shopping_service
        [entry_id] = await shopping.promote_to_shopping(
            fridge_id, "owner", {MILK: 2}
        )
        await shopping.set_target_expiry(fridge_id, "owner", entry_id, NOW)
        entry_path = f"fridges/{fridge_id}/shopping/{entry_id}"
        # Another device completes the purchase between our read and commit.
        store.before_commit = lambda _batch: store.docs.pop(entry_path)
        with pytest.raises(NotFoundError):
            await shopping.mark_purchased(fridge_id, "owner", entry_id)
        return fridge_id

    fridge_id = asyncio.run(scenario())

    assert len(store.paths(f"fridges/{fridge_id}/stock")) == 1


def test_adjust_quantity_rejects_non_finite_delta(container, store) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        shopping = container.shopping_service
        [entry_id] = await shopping.promote_to_shopping(
            fridge_id, "owner", {MILK: 1}
        )
        for delta in (float("nan"), float("inf")):
            with pytest.raises(InvalidInputError):
                await shopping.adjust_quantity(fridge_id, "owner", entry_id, delta)
        return store.data(f"fridges/{fridge_id}/shopping/{entry_id}")

    entry = asyncio.run(scenario())

    assert entry["qty"] == 1


def test_adjust_quantity_bounds(container) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        shopping = container.shopping_service
        [entry_id] = await shopping.promote_to_shopping(
            fridge_id, "owner", {MILK: 1}
        )
        with pytest.raises(InvalidInputError):
            await shopping.adjust_quantity(fridge_id, "owner", entry_id, -1)
        return [
            await shopping.adjust_quantity(fridge_id, "owner", entry_id, delta)
            for delta in (5, 20000, -3, -20000)
        ]

    assert asyncio.run(scenario()) == [6, 9999, 9996, 1]


def test_remove_entry_and_membership_checks(container, store) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        shopping = container.shopping_service
        [entry_id] = await shopping.promote_to_shopping(
            fridge_id, "owner", {MILK: 1}
        )
        with pytest.raises(ForbiddenError):
            await shopping.remove_entry(fridge_id, "stranger", entry_id)
        await shopping.remove_entry(fridge_id, "owner", entry_id)
        with pytest.raises(NotFoundError):
            await shopping.remove_entry(fridge_id, "owner", entry_id)
        return await shopping.list_entries(fridge_id)

    assert asyncio.run(scenario()) == []


def test_list_entries_skips_non_pending(container, store) -> None:
    async def scenario():
        fridge_id, _ = await _fridge_with_milk(container)
        store.seed(f"fridges/{fridge_id}/shopping/old", {"name": "X", "status": "done"})
        await container.shopping_service.promote_to_shopping(
            fridge_id, "owner", {MILK: 1}
        )
        return await container.shopping_service.list_entries(fridge_id)

    assert [entry.name for entry in asyncio.run(scenario())] == ["Milk"]


def test_shopping_candidates_sorting_and_summary() -> None:
    alpha = Fridge(id="f1", name="alpha", owner_uid="u", invite_code="A")
    beta = Fridge(id="f2", name="Beta", owner_uid="u", invite_code="B")
    fridges = [
        (
            beta,
            [
                _stock("b1", "Yogurt", 5, 0, NOW + timedelta(days=1)),
                _stock("b2", "Eggs", 1, 2),
            ],
        ),
        (
            alpha,
            [
                _stock("a1", "zucchini", 1, 1),
                _stock("a2", "Apples", 1, 1),
                _stock("a3", "Cheese", 1, 1, NOW + timedelta(days=2)),
                _stock("a4", "Rice", 9, 1, NOW + timedelta(days=30)),
            ],
        ),
    ]

    candidates = shopping_candidates(fridges, NOW)
    summary = summarize_candidates(candidates)

    assert [candidate.item_id for candidate in candidates] == [
        "a3",
        "a2",
        "a1",
        "b1",
        "b2",
    ]
    cheese = candidates[0]
    assert cheese.needs_restock is True
    assert cheese.expiring_soon is True
    assert (summary.total, summary.low_stock, summary.expiring_soon) == (5, 4, 2)
    assert summary.per_fridge["f1"].total == 3
    assert summary.per_fridge["f2"].name == "Beta"


def test_candidates_for_user_skips_missing_fridges(container, store) -> None:
    async def scenario():
        await _fridge_with_milk(container)
        store.seed("users/owner/memberships/gone", {"role": "member"})
        return await container.shopping_service.candidates_for_user("owner")

    candidates, summary = asyncio.run(scenario())

    assert [candidate.name for candidate in candidates] == ["Milk"]
    assert summary.low_stock == 1
