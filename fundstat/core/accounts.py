#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Fund account registry loader.

CSV format expected at config/fund_accounts.csv:
name,type,address,description
MAIN ISSUER,issuer,GACKTN5...,Main fund issuer
...

Notes:
- Lines starting with '#' are ignored.
- Header row is required.
- type is one of: issuer, subfond, mutual, operational, other.
- Duplicate addresses are rejected; the registry is immutable once loaded.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Set, Tuple
import csv

from ..shared.models import AccountType, FundAccount

# Accounts whose balances count towards the fund's own assets
MAIN_ACCOUNT_TYPES = (AccountType.ISSUER, AccountType.SUBFOND, AccountType.OPERATIONAL)


class AccountRegistryError(Exception):
    pass


class FundRegistry:
    """Ordered, read-only collection of fund accounts."""

    def __init__(self, accounts: Iterable[FundAccount]) -> None:
        self._accounts: Tuple[FundAccount, ...] = tuple(accounts)
        seen: Set[str] = set()
        for acc in self._accounts:
            if acc.address in seen:
                raise AccountRegistryError(f"duplicate account address: {acc.address}")
            seen.add(acc.address)

    def __iter__(self):
        return iter(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def addresses(self) -> List[str]:
        return [a.address for a in self._accounts]

    def main_accounts(self) -> List[FundAccount]:
        return [a for a in self._accounts if a.type in MAIN_ACCOUNT_TYPES]

    def mutual_accounts(self) -> List[FundAccount]:
        return [a for a in self._accounts if a.type is AccountType.MUTUAL]

    def other_accounts(self) -> List[FundAccount]:
        return [a for a in self._accounts if a.type is AccountType.OTHER]


def _is_ledger_address(s: str) -> bool:
    return len(s) == 56 and s.startswith("G") and s.isalnum() and s.isupper()


def load_accounts(csv_path: str | Path) -> FundRegistry:
    p = Path(csv_path)
    if not p.exists():
        raise AccountRegistryError(f"Account registry file not found: {p}")

    accounts: List[FundAccount] = []
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.reader(f)
        header_seen = False
        for line_no, row in enumerate(reader, start=1):
            if not row or not any(c.strip() for c in row):
                continue
            if row[0].strip().startswith("#"):
                continue
            if not header_seen:
                header_seen = True
                if len(row) < 3:
                    raise AccountRegistryError("Invalid registry header: expected columns name,type,address[,description]")
                continue
            if len(row) < 3:
                raise AccountRegistryError(f"{p}:{line_no}: expected at least 3 columns")
            name = row[0].strip()
            type_raw = row[1].strip().lower()
            address = row[2].strip()
            description = row[3].strip() if len(row) > 3 else ""
            try:
                acc_type = AccountType(type_raw)
            except ValueError:
                raise AccountRegistryError(f"{p}:{line_no}: unknown account type {type_raw!r}")
            if not name or not _is_ledger_address(address):
                raise AccountRegistryError(f"{p}:{line_no}: invalid account name or address")
            accounts.append(FundAccount(name=name, type=acc_type, address=address, description=description))
    if not accounts:
        raise AccountRegistryError("Account registry is empty after parsing")
    return FundRegistry(accounts)
