from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import List, Optional

from .datamodels import StoredAccount
from .errors import SchemaMismatch, StorageUnavailable
from .storage import DeviceStorage

logger = logging.getLogger("lostlibrary")

ACCOUNTS_KEY = "lostlibrary.accounts"


class AccountStore:
    """Accounts signed into on this device, in first-insertion order.

    Storage faults never leave this class: reads come back empty and writes
    are dropped, so the app keeps working without multi-account support.
    """

    def __init__(self, storage: DeviceStorage):
        self.storage = storage

    def _load(self) -> List[StoredAccount]:
        raw = self.storage.get(ACCOUNTS_KEY)
        if raw is None:
            return []
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SchemaMismatch(f"accounts list is not valid JSON: {e}") from e
        if not isinstance(records, list):
            raise SchemaMismatch("accounts list is not a list")

        accounts: List[StoredAccount] = []
        seen = set()
        for record in records:
            try:
                account = StoredAccount.from_record(record)
            except SchemaMismatch as e:
                logger.warning("Dropping stored account record: %s", e)
                continue
            if account.id in seen:
                continue
            seen.add(account.id)
            accounts.append(account)
        return accounts

    def _save(self, accounts: List[StoredAccount]) -> None:
        self.storage.set(ACCOUNTS_KEY, json.dumps([a.to_record() for a in accounts]))

    def list_accounts(self) -> List[StoredAccount]:
        try:
            return self._load()
        except (StorageUnavailable, SchemaMismatch) as e:
            logger.warning("Account store unavailable, listing nothing: %s", e)
            return []

    def get_account(self, account_id: str) -> Optional[StoredAccount]:
        for account in self.list_accounts():
            if account.id == account_id:
                return account
        return None

    def upsert_account(self, account: StoredAccount) -> None:
        """Insert, or merge the supplied (non-None) fields into the existing record."""
        try:
            accounts = self._load()
        except SchemaMismatch as e:
            logger.warning("Replacing unreadable account list: %s", e)
            accounts = []
        except StorageUnavailable as e:
            logger.warning("Account store unavailable, dropping upsert: %s", e)
            return

        for i, existing in enumerate(accounts):
            if existing.id == account.id:
                accounts[i] = replace(existing, **account.supplied_fields())
                break
        else:
            accounts.append(account)

        try:
            self._save(accounts)
        except StorageUnavailable as e:
            logger.warning("Account store unavailable, dropping upsert: %s", e)

    def forget_session(self, account_id: str) -> None:
        """Clear the stored tokens of one account, keeping its display fields."""
        try:
            accounts = self._load()
            for i, existing in enumerate(accounts):
                if existing.id == account_id:
                    accounts[i] = replace(
                        existing,
                        last_session_token=None,
                        last_refresh_token=None,
                        captured_at=None,
                    )
                    self._save(accounts)
                    return
        except (StorageUnavailable, SchemaMismatch) as e:
            logger.warning("Account store unavailable, cannot forget session: %s", e)

    def remove_account(self, account_id: str) -> None:
        try:
            accounts = self._load()
            remaining = [a for a in accounts if a.id != account_id]
            if len(remaining) != len(accounts):
                self._save(remaining)
        except (StorageUnavailable, SchemaMismatch) as e:
            logger.warning("Account store unavailable, cannot remove account: %s", e)

    def most_recent(self) -> Optional[StoredAccount]:
        """The account whose session was captured last, if any."""
        with_session = [a for a in self.list_accounts() if a.has_session and a.captured_at]
        if not with_session:
            return None
        return max(with_session, key=lambda a: a.captured_at or 0)
