from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from lostlibrary.accounts import ACCOUNTS_KEY, AccountStore
from lostlibrary.datamodels import StoredAccount
from lostlibrary.errors import StorageUnavailable
from lostlibrary.storage import DeviceStorage


def test_list_accounts_empty_when_nothing_stored(accounts):
    assert accounts.list_accounts() == []


def test_upsert_keeps_first_insertion_order(accounts):
    accounts.upsert_account(StoredAccount(id="a", email="a@example.com"))
    accounts.upsert_account(StoredAccount(id="b", email="b@example.com"))
    accounts.upsert_account(StoredAccount(id="c", email="c@example.com"))
    accounts.upsert_account(StoredAccount(id="a", username="alpha"))

    listed = accounts.list_accounts()
    assert [a.id for a in listed] == ["a", "b", "c"]
    assert listed[0].username == "alpha"


def test_upsert_merge_never_drops_omitted_fields(accounts):
    accounts.upsert_account(
        StoredAccount(
            id="a",
            email="a@example.com",
            username="ada",
            full_name="Ada Lovelace",
            last_refresh_token="refresh-1",
            captured_at=10.0,
        )
    )
    accounts.upsert_account(StoredAccount(id="a", avatar_url="https://img/ada.png"))

    stored = accounts.get_account("a")
    assert stored.email == "a@example.com"
    assert stored.username == "ada"
    assert stored.full_name == "Ada Lovelace"
    assert stored.avatar_url == "https://img/ada.png"
    assert stored.last_refresh_token == "refresh-1"
    assert stored.captured_at == 10.0


def test_email_is_not_a_key(accounts):
    accounts.upsert_account(StoredAccount(id="a", email="shared@example.com"))
    accounts.upsert_account(StoredAccount(id="b", email="shared@example.com"))
    assert len(accounts.list_accounts()) == 2


def test_remove_account_is_idempotent(accounts):
    accounts.upsert_account(StoredAccount(id="a", email="a@example.com"))
    accounts.upsert_account(StoredAccount(id="b", email="b@example.com"))

    accounts.remove_account("a")
    assert [a.id for a in accounts.list_accounts()] == ["b"]

    accounts.remove_account("a")
    assert [a.id for a in accounts.list_accounts()] == ["b"]


def test_remove_unknown_account_is_noop(accounts):
    accounts.remove_account("missing")
    assert accounts.list_accounts() == []


def test_forget_session_keeps_display_fields(accounts):
    accounts.upsert_account(
        StoredAccount(
            id="a",
            email="a@example.com",
            last_session_token="access",
            last_refresh_token="refresh",
            captured_at=5.0,
        )
    )
    accounts.forget_session("a")
    stored = accounts.get_account("a")
    assert stored.email == "a@example.com"
    assert stored.last_refresh_token is None
    assert stored.last_session_token is None
    assert not stored.has_session


def test_most_recent_picks_latest_capture(accounts):
    accounts.upsert_account(StoredAccount(id="a", last_refresh_token="r1", captured_at=1.0))
    accounts.upsert_account(StoredAccount(id="b", last_refresh_token="r2", captured_at=3.0))
    accounts.upsert_account(StoredAccount(id="c"))
    assert accounts.most_recent().id == "b"


def test_storage_that_always_fails_degrades_to_empty():
    storage = MagicMock()
    storage.get.side_effect = StorageUnavailable("disabled")
    storage.set.side_effect = StorageUnavailable("disabled")
    store = AccountStore(storage)

    assert store.list_accounts() == []
    store.upsert_account(StoredAccount(id="a", email="a@example.com"))
    store.remove_account("a")
    store.forget_session("a")
    assert store.get_account("a") is None


def test_write_failure_is_dropped_silently():
    storage = MagicMock()
    storage.get.return_value = None
    storage.set.side_effect = StorageUnavailable("quota exceeded")
    store = AccountStore(storage)

    store.upsert_account(StoredAccount(id="a"))
    storage.set.assert_called_once()


def test_unknown_record_version_is_dropped(storage, accounts):
    good = StoredAccount(id="a", email="a@example.com").to_record()
    future = dict(good, id="b", version=99)
    storage.set(ACCOUNTS_KEY, json.dumps([good, future, "garbage"]))

    assert [a.id for a in accounts.list_accounts()] == ["a"]


def test_unreadable_list_is_replaced_on_write(storage, accounts):
    storage.set(ACCOUNTS_KEY, "{not json")
    assert accounts.list_accounts() == []

    accounts.upsert_account(StoredAccount(id="a"))
    assert [a.id for a in accounts.list_accounts()] == ["a"]


@pytest.mark.parametrize(
    "record",
    [
        {"version": 1},
        {"version": 1, "id": ""},
        {"version": 1, "id": "a", "email": 42},
        {"version": 1, "id": "a", "captured_at": "yesterday"},
    ],
)
def test_malformed_records_are_rejected(storage, accounts, record):
    storage.set(ACCOUNTS_KEY, json.dumps([record]))
    assert accounts.list_accounts() == []


def test_undecodable_storage_file_lists_nothing(tmp_path):
    path = tmp_path / "storage.json"
    path.write_bytes(b'{"lostlibrary.accounts": "\xff\xfe"}')
    store = AccountStore(DeviceStorage(str(path)))

    assert store.list_accounts() == []
    store.upsert_account(StoredAccount(id="a"))
