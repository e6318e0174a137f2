"""
operations.py - Pure ledger state transitions

Each compute_* function validates its inputs, then returns the new records
an operation produces. Nothing here touches storage; the Ledger class in
ledger.py persists the results.

All validation happens before any record is built, so a raised
ValidationError or InsufficientFunds means nothing changed.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from .core import (
    Asset, User, Transaction, PaymentGateway,
    TransactionType, TransactionStatus, TradeDirection, AdjustmentDirection,
    ValidationError, InsufficientFunds, InvalidTransition, GatewayNotFound,
    FIAT_UNIT_PRICE, MANUAL_ADJUSTMENT_PREFIX, ZERO,
    generate_id, to_positive_decimal, require_text,
)


@dataclass(frozen=True, slots=True)
class Outcome:
    """Records produced by a pure operation. Either field may be None."""
    user: Optional[User]
    transaction: Optional[Transaction]


def _new_transaction(
    user: User,
    tx_type: TransactionType,
    status: TransactionStatus,
    amount: Decimal,
    price: Decimal,
    now: datetime,
    **extra: Any,
) -> Transaction:
    return Transaction(
        id=generate_id(),
        user_id=user.id,
        user_name=user.name,
        amount=amount,
        price_at_request=price,
        total_value=amount * price,
        type=tx_type,
        status=status,
        date=now,
        **extra,
    )


def compute_trade(
    user: User,
    asset: Asset,
    quantity: Any,
    direction: TradeDirection,
    now: datetime,
) -> Outcome:
    """
    Price a buy or sell against the asset's current price.

    BUY debits quantity * price and adds to holdings; fails if the cost
    exceeds the balance. SELL credits the proceeds and clamps holdings at
    zero when selling more than is held.

    Args:
        user: Trading account
        asset: Catalog entry at its current price
        quantity: Finite positive quantity
        direction: BUY or SELL
        now: Transaction timestamp

    Returns:
        Outcome with the updated user and an APPROVED transaction

    Raises:
        ValidationError: Bad quantity or direction
        InsufficientFunds: BUY cost above balance
    """
    qty = to_positive_decimal(quantity, "quantity")
    try:
        direction = TradeDirection(direction)
    except ValueError:
        raise ValidationError(f"direction must be BUY or SELL, got {direction!r}") from None

    price = asset.price
    value = qty * price
    held = user.holding(asset.type)

    if direction is TradeDirection.BUY:
        if value > user.balance:
            raise InsufficientFunds(
                f"Buying {qty} {asset.symbol} costs {value}, balance is {user.balance}"
            )
        updated = user.with_balance(user.balance - value).with_holding(asset.type, held + qty)
        tx_type = TransactionType.BUY
    else:
        updated = user.with_balance(user.balance + value).with_holding(
            asset.type, max(ZERO, held - qty)
        )
        tx_type = TransactionType.SELL

    tx = _new_transaction(
        user, tx_type, TransactionStatus.APPROVED, qty, price, now,
        asset_type=asset.type,
    )
    return Outcome(updated, tx)


def compute_deposit_request(
    user: User,
    amount: Any,
    reference: Optional[str],
    now: datetime,
    gateway: Optional[PaymentGateway] = None,
) -> Outcome:
    """
    Create a PENDING deposit. The balance is untouched until an admin approves.

    When a gateway is given it must be active and the amount must sit within
    its deposit limits.
    """
    value = to_positive_decimal(amount, "amount")
    ref = require_text(reference, "external reference")
    if gateway is not None:
        if not gateway.active:
            raise GatewayNotFound(f"Payment gateway {gateway.name} is not active")
        if gateway.min_deposit is not None and value < gateway.min_deposit:
            raise ValidationError(
                f"Minimum deposit for {gateway.name} is {gateway.min_deposit}"
            )
        if gateway.max_deposit is not None and value > gateway.max_deposit:
            raise ValidationError(
                f"Maximum deposit for {gateway.name} is {gateway.max_deposit}"
            )

    tx = _new_transaction(
        user, TransactionType.DEPOSIT, TransactionStatus.PENDING, value, FIAT_UNIT_PRICE, now,
        external_tx_id=ref,
    )
    return Outcome(None, tx)


def compute_withdrawal_request(
    user: User,
    amount: Any,
    payout_details: Optional[str],
    now: datetime,
) -> Outcome:
    """
    Create a PENDING withdrawal and hold the funds.

    The balance is debited immediately; a later rejection refunds it and an
    approval leaves it as is.
    """
    value = to_positive_decimal(amount, "amount")
    details = require_text(payout_details, "payout details")
    if value > user.balance:
        raise InsufficientFunds(f"Withdrawal of {value} exceeds balance {user.balance}")

    tx = _new_transaction(
        user, TransactionType.WITHDRAW, TransactionStatus.PENDING, value, FIAT_UNIT_PRICE, now,
        payout_details=details,
    )
    return Outcome(user.with_balance(user.balance - value), tx)


def compute_admin_decision(
    transaction: Transaction,
    owner: Optional[User],
    decision: Any,
) -> Outcome:
    """
    Move a PENDING deposit or withdrawal to APPROVED or REJECTED.

    Balance effects:
        DEPOSIT  + APPROVED -> credit amount
        WITHDRAW + REJECTED -> refund the held amount
        anything else       -> no balance change

    Returns:
        Outcome with the updated transaction, and the updated owner when the
        balance changed (otherwise the owner unchanged, or None if unknown)

    Raises:
        ValidationError: decision is not APPROVED or REJECTED
        InvalidTransition: transaction is not PENDING
    """
    try:
        decision = TransactionStatus(decision)
    except ValueError:
        raise ValidationError(f"decision must be APPROVED or REJECTED, got {decision!r}") from None
    if decision is TransactionStatus.PENDING:
        raise ValidationError("decision must be APPROVED or REJECTED, got PENDING")
    if not transaction.is_pending:
        raise InvalidTransition(
            f"Transaction {transaction.id} is already {transaction.status.value}"
        )

    decided = replace(transaction, status=decision)
    if owner is None:
        return Outcome(None, decided)

    credit = (
        (transaction.type is TransactionType.DEPOSIT and decision is TransactionStatus.APPROVED)
        or (transaction.type is TransactionType.WITHDRAW and decision is TransactionStatus.REJECTED)
    )
    if credit:
        owner = owner.with_balance(owner.balance + transaction.amount)
    return Outcome(owner, decided)


def compute_balance_adjustment(
    user: User,
    amount: Any,
    direction: AdjustmentDirection,
    now: datetime,
    admin: User,
) -> Outcome:
    """
    Admin balance correction.

    SUBTRACT never takes the balance below zero. The effective change is
    recorded as an APPROVED DEPOSIT (ADD) or WITHDRAW (SUBTRACT) tagged with
    the admin's id. A SUBTRACT on an empty balance changes nothing and
    records nothing.
    """
    value = to_positive_decimal(amount, "amount")
    try:
        direction = AdjustmentDirection(direction)
    except ValueError:
        raise ValidationError(f"direction must be ADD or SUBTRACT, got {direction!r}") from None

    if direction is AdjustmentDirection.ADD:
        delta = value
        tx_type = TransactionType.DEPOSIT
    else:
        delta = min(value, user.balance)
        tx_type = TransactionType.WITHDRAW
    if delta <= ZERO:
        return Outcome(user, None)

    new_balance = user.balance + delta if direction is AdjustmentDirection.ADD else user.balance - delta
    reference = f"{MANUAL_ADJUSTMENT_PREFIX}:{admin.id}"
    extra = {"external_tx_id": reference} if tx_type is TransactionType.DEPOSIT else {"payout_details": reference}
    tx = _new_transaction(
        user, tx_type, TransactionStatus.APPROVED, delta, FIAT_UNIT_PRICE, now, **extra,
    )
    return Outcome(user.with_balance(new_balance), tx)
