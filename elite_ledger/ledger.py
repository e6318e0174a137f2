"""
ledger.py - Stateful ledger orchestrator

The Ledger class is the entry point for the presentation layer. Each method
validates its inputs, computes the new records with a pure function from
operations.py, and writes them through the StorageAdapter before returning.

Key responsibilities:
    - Trades, deposit/withdrawal requests, admin decisions and adjustments
    - Compare-and-swap writes so a stale user snapshot cannot overwrite a
      newer balance, and a decided transaction cannot be decided again
    - Reporting remote sync status with every result (LedgerResult.sync)
    - Signup, user deletion, gateway maintenance and admin queries
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
import logging
import secrets
from typing import Any, Callable, List, Optional, Union

from .catalog import AssetCatalog
from .core import (
    Asset, AssetType, User, Transaction, PaymentGateway,
    TransactionType, TransactionStatus, TradeDirection, AdjustmentDirection,
    ExecuteResult, Role,
    ValidationError, DuplicateEmail, UserNotFound, TransactionNotFound, GatewayNotFound,
    InvalidTransition, ConcurrentModification, PersistenceError,
    compute_net_worth, empty_portfolio, generate_id, require_text, utc_now,
)
from .operations import (
    compute_trade,
    compute_deposit_request,
    compute_withdrawal_request,
    compute_admin_decision,
    compute_balance_adjustment,
)
from .session import Session
from .storage import StorageAdapter, SyncReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LedgerResult:
    """
    What a ledger operation produced.

    Attributes:
        user: The updated user, when the operation touched one
        transaction: The created or updated transaction, if any
        sync: Per-write remote sync outcome. sync.saved_locally_only means
              the records are cached but the remote store has not got them.
        outcome: APPLIED, or ALREADY_APPLIED for an idempotent repeat
    """
    user: Optional[User]
    transaction: Optional[Transaction]
    sync: SyncReport
    outcome: ExecuteResult = ExecuteResult.APPLIED

    @property
    def remote_synced(self) -> bool:
        return self.sync.remote_synced


@dataclass(frozen=True, slots=True)
class LedgerState:
    users: List[User]
    transactions: List[Transaction]
    gateways: List[PaymentGateway]


class Ledger:
    """
    Ledger operations over a storage adapter and a live asset catalog.

    Not thread-safe. Operations are expected to run one at a time; writes
    that could race are refused with ConcurrentModification or
    InvalidTransition rather than merged.

    Example:
        ledger = Ledger(StorageAdapter(LocalCache()), AssetCatalog())
        alice = ledger.register_user("Alice", "alice@example.com").user
        result = ledger.request_deposit(alice, 500, "BANK-REF-1")
        ledger.process_admin_decision(admin_session, result.transaction, "APPROVED")
    """

    def __init__(
        self,
        storage: StorageAdapter,
        catalog: Optional[AssetCatalog] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.catalog = catalog if catalog is not None else AssetCatalog()
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ========================================================================
    # VALUATION
    # ========================================================================

    def compute_net_worth(self, user: User) -> Decimal:
        """Balance plus holdings at current catalog prices."""
        return compute_net_worth(user, self.catalog.assets())

    # ========================================================================
    # USER OPERATIONS
    # ========================================================================

    def execute_trade(
        self,
        user: User,
        asset: Union[Asset, AssetType, str],
        quantity: Any,
        direction: Union[TradeDirection, str],
    ) -> LedgerResult:
        """
        Buy or sell an asset at its current price.

        The trade is APPROVED immediately. The user record is written first
        (compare-and-swap on version), then the transaction.

        Args:
            user: The trading user as last read
            asset: Catalog Asset, or an AssetType to price from the live catalog
            quantity: Positive quantity
            direction: BUY or SELL

        Raises:
            ValidationError, InsufficientFunds: Nothing was written
            ConcurrentModification: user is stale; nothing was written
            PersistenceError: The local cache could not be written
        """
        if not isinstance(asset, Asset):
            try:
                asset = self.catalog.get_asset(asset)
            except KeyError as e:
                raise ValidationError(str(e.args[0])) from None
        outcome = compute_trade(user, asset, quantity, direction, self.now())

        user_write = self.storage.sync_user(outcome.user, expected_version=user.version)
        tx_write = self.storage.add_transaction(outcome.transaction)
        logger.info(
            "%s %s %s for user %s at %s (total %s)",
            outcome.transaction.type.value, outcome.transaction.amount, asset.symbol,
            user.id, asset.price, outcome.transaction.total_value,
        )
        return LedgerResult(outcome.user, outcome.transaction, SyncReport.of(user_write, tx_write))

    def request_deposit(
        self,
        user: User,
        amount: Any,
        external_reference: str,
        gateway_name: Optional[str] = None,
    ) -> LedgerResult:
        """
        File a PENDING deposit for admin review. The balance does not change.

        When gateway_name is given the gateway must exist and be active, and
        the amount must be within its deposit limits.
        """
        gateway = self._find_gateway(gateway_name) if gateway_name else None
        outcome = compute_deposit_request(user, amount, external_reference, self.now(), gateway)
        tx_write = self.storage.add_transaction(outcome.transaction)
        logger.info(
            "Deposit request %s for user %s: %s (ref %s)",
            outcome.transaction.id, user.id, outcome.transaction.amount,
            outcome.transaction.external_tx_id,
        )
        return LedgerResult(user, outcome.transaction, SyncReport.of(tx_write))

    def request_withdrawal(self, user: User, amount: Any, payout_details: str) -> LedgerResult:
        """
        File a PENDING withdrawal and hold the funds.

        The balance is debited now; a rejection refunds it.
        """
        outcome = compute_withdrawal_request(user, amount, payout_details, self.now())
        user_write = self.storage.sync_user(outcome.user, expected_version=user.version)
        tx_write = self.storage.add_transaction(outcome.transaction)
        logger.info(
            "Withdrawal request %s for user %s: %s held",
            outcome.transaction.id, user.id, outcome.transaction.amount,
        )
        return LedgerResult(outcome.user, outcome.transaction, SyncReport.of(user_write, tx_write))

    def user_transactions(self, user: User) -> List[Transaction]:
        """The user's own transactions, newest first."""
        return [tx for tx in self.storage.fetch_transactions() if tx.user_id == user.id]

    def active_gateways(self) -> List[PaymentGateway]:
        return [gw for gw in self.storage.fetch_gateways() if gw.active]

    # ========================================================================
    # ADMIN OPERATIONS
    # ========================================================================

    def process_admin_decision(
        self,
        session: Session,
        transaction: Transaction,
        decision: Union[TransactionStatus, str],
    ) -> LedgerResult:
        """
        Approve or reject a PENDING deposit or withdrawal.

        The stored copy of the transaction is read first. Repeating the
        decision it already carries returns ALREADY_APPLIED and changes
        nothing; a different decision on a decided transaction raises
        InvalidTransition. The status write is compare-and-swap from
        PENDING, so the balance effect applies at most once. If the owner's
        balance write fails after that, the status goes back to PENDING and
        the error propagates, so the decision can be retried.

        Raises:
            TransactionNotFound: The transaction is not in storage
            InvalidTransition: Not a fiat request, or already decided otherwise
            ConcurrentModification: The owner changed during the decision

        Returns:
            LedgerResult with the decided transaction and the owner (None if
            the owner no longer exists; the status is still recorded)
        """
        session.require_admin()
        try:
            decision = TransactionStatus(decision)
        except ValueError:
            raise ValidationError(f"decision must be APPROVED or REJECTED, got {decision!r}") from None

        current = self.storage.get_transaction(transaction.id)
        if current is None:
            raise TransactionNotFound(f"Transaction {transaction.id} not found")
        if not current.is_fiat_request:
            raise InvalidTransition(f"{current.type.value} transactions are not subject to review")
        if not current.is_pending and current.status is decision:
            logger.warning(
                "Transaction %s is already %s; decision ignored", current.id, decision.value
            )
            return LedgerResult(None, current, SyncReport(), ExecuteResult.ALREADY_APPLIED)

        owner = self.storage.get_user(current.user_id)
        outcome = compute_admin_decision(current, owner, decision)

        status_write = self.storage.update_transaction_status(
            current.id, decision, expected_status=TransactionStatus.PENDING
        )
        user_write = None
        if owner is None:
            logger.warning("Owner %s of transaction %s not found", current.user_id, current.id)
        elif outcome.user is not owner:
            try:
                user_write = self.storage.sync_user(outcome.user, expected_version=owner.version)
            except (ConcurrentModification, PersistenceError):
                logger.error(
                    "Balance update for %s failed; %s returned to PENDING", owner.id, current.id
                )
                undo = self.storage.update_transaction_status(
                    current.id, TransactionStatus.PENDING, expected_status=decision
                )
                if undo.error is not None:
                    logger.error("Remote status of %s is still %s", current.id, decision.value)
                raise

        logger.info(
            "%s %s %s by %s", decision.value, current.type.value, current.id, session.user_id
        )
        return LedgerResult(outcome.user, outcome.transaction, SyncReport.of(status_write, user_write))

    def adjust_balance_manually(
        self,
        session: Session,
        user: User,
        amount: Any,
        direction: Union[AdjustmentDirection, str],
    ) -> LedgerResult:
        """
        Add to or subtract from a balance directly (SUBTRACT clamps at zero).

        The change is recorded as an APPROVED DEPOSIT or WITHDRAW tagged as a
        manual adjustment. A SUBTRACT on a zero balance writes nothing and
        returns ALREADY_APPLIED.
        """
        session.require_admin()
        outcome = compute_balance_adjustment(user, amount, direction, self.now(), session.user)
        if outcome.transaction is None:
            return LedgerResult(user, None, SyncReport(), ExecuteResult.ALREADY_APPLIED)

        user_write = self.storage.sync_user(outcome.user, expected_version=user.version)
        tx_write = self.storage.add_transaction(outcome.transaction)
        logger.info(
            "Manual %s of %s on user %s by %s",
            AdjustmentDirection(direction).value, outcome.transaction.amount, user.id, session.user_id,
        )
        return LedgerResult(outcome.user, outcome.transaction, SyncReport.of(user_write, tx_write))

    def pending_requests(self, session: Session) -> List[Transaction]:
        """PENDING deposits and withdrawals awaiting a decision, newest first."""
        session.require_admin()
        return [tx for tx in self.storage.fetch_transactions() if tx.is_pending and tx.is_fiat_request]

    def transaction_history(
        self,
        session: Session,
        tx_type: Optional[Union[TransactionType, str]] = None,
        status: Optional[Union[TransactionStatus, str]] = None,
    ) -> List[Transaction]:
        """All transactions, optionally filtered by type and status."""
        session.require_admin()
        tx_type = TransactionType(tx_type) if tx_type else None
        status = TransactionStatus(status) if status else None
        return [
            tx for tx in self.storage.fetch_transactions()
            if (tx_type is None or tx.type is tx_type)
            and (status is None or tx.status is status)
        ]

    def search_users(self, session: Session, query: str = "") -> List[User]:
        """Users whose name or email contains query (case-insensitive)."""
        session.require_admin()
        needle = (query or "").strip().lower()
        return [
            u for u in self.storage.fetch_users()
            if needle in u.name.lower() or needle in u.email.lower()
        ]

    def delete_user(self, session: Session, user_id: str) -> LedgerResult:
        session.require_admin()
        user = self.storage.get_user(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        write = self.storage.delete_user(user_id)
        logger.info("Deleted user %s by %s", user_id, session.user_id)
        return LedgerResult(user, None, SyncReport.of(write))

    def save_gateway(self, session: Session, gateway: PaymentGateway) -> PaymentGateway:
        """
        Create or update a payment gateway. A missing api_key is generated.

        Returns:
            The gateway as stored
        """
        session.require_admin()
        name = require_text(gateway.name, "gateway name")
        stored = replace(gateway, name=name, api_key=gateway.api_key or secrets.token_hex(16))
        result = self.storage.save_gateway(stored)
        if result.error is not None:
            logger.warning("Gateway %s saved locally only", name)
        return stored

    def set_gateway_active(self, session: Session, name: str, active: bool) -> PaymentGateway:
        session.require_admin()
        gateway = self._find_gateway(name, active_only=False)
        return self.save_gateway(session, replace(gateway, active=bool(active)))

    # ========================================================================
    # ACCOUNTS
    # ========================================================================

    def register_user(
        self,
        name: str,
        email: str,
        address: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> LedgerResult:
        """
        Sign up a new user with a zero balance and an empty portfolio.

        Raises:
            ValidationError: Name or email missing
            DuplicateEmail: The email is taken (case-insensitive)
        """
        name = require_text(name, "name")
        email = require_text(email, "email").lower()
        if any(u.email.lower() == email for u in self.storage.fetch_users()):
            raise DuplicateEmail(f"An account for {email} already exists")

        user = User(
            id=generate_id(),
            name=name,
            email=email,
            address=address.strip() if address else None,
            phone=phone.strip() if phone else None,
            role=Role.USER,
            portfolio=empty_portfolio(),
        )
        write = self.storage.sync_user(user)
        logger.info("Registered user %s", user.id)
        return LedgerResult(user, None, SyncReport.of(write))

    def load_state(self) -> LedgerState:
        """Fetch users, transactions and gateways in one refresh."""
        return LedgerState(
            users=self.storage.fetch_users(),
            transactions=self.storage.fetch_transactions(),
            gateways=self.storage.fetch_gateways(),
        )

    # ========================================================================

    def _find_gateway(self, name: str, active_only: bool = True) -> PaymentGateway:
        for gateway in self.storage.fetch_gateways():
            if gateway.name == name:
                if active_only and not gateway.active:
                    raise GatewayNotFound(f"Payment gateway {name} is not active")
                return gateway
        raise GatewayNotFound(f"Payment gateway {name} not found")

    def __repr__(self):
        return f"Ledger({self.storage!r}, {self.catalog!r})"
