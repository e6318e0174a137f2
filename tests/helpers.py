"""
helpers.py - Shared test helpers

Fixed clock and shortcuts for putting users into a known state without going
through deposits.
"""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from elite_ledger import Ledger, User, AssetType


T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def fund_user(ledger: Ledger, user: User, balance, **holdings) -> User:
    """Store a copy of user with the given balance and holdings."""
    portfolio = dict(user.portfolio)
    for name, qty in holdings.items():
        portfolio[AssetType[name]] = Decimal(str(qty))
    funded = replace(user, balance=Decimal(str(balance)), portfolio=portfolio, version=user.version + 1)
    ledger.storage.sync_user(funded)
    return funded


def new_user(ledger: Ledger, name: str = "Alice", email: str = "alice@example.com",
             balance="0", **holdings) -> User:
    user = ledger.register_user(name, email).user
    if balance != "0" or holdings:
        user = fund_user(ledger, user, balance, **holdings)
    return user
