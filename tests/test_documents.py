"""Tests for document primitives and parsing defaults."""

import pytest

from fridge_share.domain.documents import (
    SERVER_TIMESTAMP,
    Document,
    WriteBatch,
    split_path,
)
from fridge_share.services.documents import (
    member_display_name,
    parse_fridge,
    parse_shopping_entry,
    parse_stock_item,
    to_float,
)


def test_split_path() -> None:
    assert split_path("fridges/f1/stock/s1") == ("fridges/f1/stock", "s1")
    with pytest.raises(ValueError):
        split_path("fridges")


def test_write_batch_separates_server_timestamps() -> None:
    batch = WriteBatch().set(
        "users/u1", {"displayName": "Ann", "createdAt": SERVER_TIMESTAMP}, merge=True
    )

    operation = batch.operations[0]
    assert operation.kind == "set"
    assert operation.merge is True
    assert operation.data == {"displayName": "Ann"}
    assert operation.server_timestamps == ("createdAt",)
    assert operation.to_payload()["collection"] == "users"


def test_write_batch_records_preconditions() -> None:
    batch = WriteBatch()
    batch.update("fridges/f1/stock/s1", {"qty": 1}, precondition={"qty": 3})
    batch.delete("fridges/f1/stock/s2")

    assert len(batch) == 2
    assert batch.operations[0].precondition == {"qty": 3}
    assert batch.operations[1].kind == "delete"


def test_parse_stock_item_applies_defaults() -> None:
    item = parse_stock_item(
        Document("fridges/f1/stock", "s1", {"qty": "2.5", "lowThreshold": "x"})
    )

    assert item.fridge_id == "f1"
    assert item.name == "-"
    assert item.unit == "pcs"
    assert item.qty == 2.5
    assert item.low_threshold == 0
    assert item.status == "in_stock"
    assert item.expire_date is None


def test_parse_stock_item_reads_expiry() -> None:
    item = parse_stock_item(
        Document(
            "fridges/f1/stock",
            "s1",
            {"name": "Milk", "qty": 1, "expireDate": "2025-01-10T00:00:00Z"},
        )
    )

    assert item.expire_date is not None
    assert item.expire_date.day == 10
    assert item.expire_date.tzinfo is not None


def test_parse_fridge_falls_back_to_generated_name() -> None:
    fridge = parse_fridge(Document("fridges", "abcdef12", {"inviteCode": "ab3cd4"}))

    assert fridge.name == "Fridge EF12"
    assert fridge.invite_code == "AB3CD4"


def test_parse_shopping_entry_defaults() -> None:
    entry = parse_shopping_entry(Document("fridges/f9/shopping", "e1", {}))

    assert entry.fridge_id == "f9"
    assert entry.status == "pending"
    assert entry.source == "fridge"
    assert entry.target_expire_date is None


def test_to_float_rejects_non_numbers() -> None:
    assert to_float(True) == 0
    assert to_float(float("nan")) == 0
    assert to_float("3") == 3


def test_member_display_name() -> None:
    assert member_display_name("user-abcd") == "Member ABCD"
    assert member_display_name("") == "Unknown member"
