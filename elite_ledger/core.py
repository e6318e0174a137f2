"""
Core types and pure functions for the Elite Exchange ledger.

This module provides the foundational data structures for the ledger:
1. Enums: AssetType, TransactionType, TransactionStatus, Role, ExecuteResult
2. Immutable records: Asset, User, Transaction, PaymentGateway
3. Exceptions: LedgerError and domain-specific error types
4. Validation helpers for amounts and free-text references
5. compute_net_worth()

All functions in this module are pure. No function performs I/O or mutates
a record in place; "updates" are expressed with dataclasses.replace().
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, getcontext
from enum import Enum
import uuid
from typing import Dict, Iterable, Optional, Any, Mapping


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Balances, quantities and prices are Decimal everywhere. The global context
# is configured once at import time.
#
#   - prec=50: enough for antimatter prices times fractional quantities
#   - rounding=ROUND_HALF_EVEN: banker's rounding
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

ZERO = Decimal("0")

# Unit price recorded on fiat moves (deposits, withdrawals, adjustments).
FIAT_UNIT_PRICE = Decimal("1")

# Prices are quoted in cents, change_24h in hundredths of a percent.
PRICE_QUANTUM = Decimal("0.01")
CHANGE_QUANTUM = Decimal("0.01")

# Singleton administrator identity. Not a stored user record.
ADMIN_USER_ID = "admin-1"
ADMIN_DISPLAY_NAME = "Master Admin"

# Reference stamped on transactions that record a manual balance adjustment.
MANUAL_ADJUSTMENT_PREFIX = "MANUAL-ADJUSTMENT"


# ============================================================================
# ENUMS
# ============================================================================

class AssetType(str, Enum):
    """Tag of a catalog asset. Membership is fixed."""
    BITCOIN = "BITCOIN"
    ANTIMATTER = "ANTIMATTER"
    AI_COMPUTE = "AI_COMPUTE"
    NEURAL_LINK = "NEURAL_LINK"
    FUSION_ENERGY = "FUSION_ENERGY"
    DIAMOND = "DIAMOND"
    GOLD = "GOLD"
    SILVER = "SILVER"
    PLATINUM = "PLATINUM"


class TransactionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"


class TransactionStatus(str, Enum):
    """
    Lifecycle status of a transaction.

    PENDING -> APPROVED | REJECTED. Both outcomes are terminal.
    BUY/SELL transactions are created APPROVED and never transition.
    """
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class TradeDirection(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class AdjustmentDirection(str, Enum):
    ADD = "ADD"
    SUBTRACT = "SUBTRACT"


class ExecuteResult(Enum):
    """
    Outcome of a ledger operation that passed validation.

    APPLIED: The operation changed ledger state.
    ALREADY_APPLIED: The operation had already been applied (idempotent no-op).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class ValidationError(LedgerError):
    """Raised for non-positive or non-numeric amounts and missing reference text."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a trade or withdrawal exceeds the available balance."""
    pass


class InvalidTransition(LedgerError):
    """Raised when a transaction status change is not PENDING -> terminal."""
    pass


class ConcurrentModification(LedgerError):
    """Raised when a compare-and-swap write finds the stored record has moved on."""
    pass


class NotAuthorized(LedgerError):
    """Raised when a non-admin session calls an admin-only operation."""
    pass


class AuthenticationFailed(LedgerError):
    """Raised when login credentials match neither the admin nor a user."""
    pass


class UserNotFound(LedgerError):
    pass


class DuplicateEmail(LedgerError):
    pass


class TransactionNotFound(LedgerError):
    pass


class GatewayNotFound(LedgerError):
    pass


class PersistenceError(LedgerError):
    """
    Raised (or reported) when a record could not be written.

    Local cache failures are raised. Remote store failures after a successful
    local write are carried in a WriteResult so the caller can tell
    "saved locally only" apart from "durably synced".
    """

    def __init__(self, message: str, operation: str = "", record_key: str = ""):
        super().__init__(message)
        self.operation = operation
        self.record_key = record_key


# ============================================================================
# HELPERS
# ============================================================================

def generate_id() -> str:
    """Return a new random record identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """
    Convert a caller-supplied number to a finite Decimal.

    Floats go through str() so 0.01 stays 0.01. Booleans are rejected even
    though they are ints.

    Raises:
        ValidationError: If the value is not numeric or not finite.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field_name} must be a number, got {value!r}") from None
    else:
        raise ValidationError(f"{field_name} must be a number, got {type(value).__name__}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value!r}")
    return result


def to_positive_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Like to_decimal(), but the result must be strictly positive."""
    result = to_decimal(value, field_name)
    if result <= ZERO:
        raise ValidationError(f"{field_name} must be positive, got {value!r}")
    return result


def require_text(value: Optional[str], field_name: str) -> str:
    """Return the stripped text, or raise ValidationError if it is blank."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def empty_portfolio() -> Dict[AssetType, Decimal]:
    """One zero entry per known asset type."""
    return {asset_type: ZERO for asset_type in AssetType}


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = str(value)
    # JavaScript toISOString() ends in "Z", which fromisoformat() rejects before 3.11
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _json_number(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Asset:
    """
    A catalog entry.

    Only price and change_24h ever change, and only through the price
    simulator in catalog.py.
    """
    type: AssetType
    name: str
    symbol: str
    price: Decimal
    change_24h: Decimal = ZERO
    color: str = ""

    def __post_init__(self):
        if not isinstance(self.price, Decimal):
            object.__setattr__(self, "price", to_decimal(self.price, "price"))
        if not isinstance(self.change_24h, Decimal):
            object.__setattr__(self, "change_24h", to_decimal(self.change_24h, "change_24h"))
        if self.price <= ZERO:
            raise ValueError(f"Asset price must be positive, got {self.price}")

    def __repr__(self) -> str:
        return f"Asset({self.symbol} @ {self.price})"


@dataclass(frozen=True, slots=True)
class User:
    """
    A trading account.

    Attributes:
        id: Immutable identifier generated at signup.
        name: Display name.
        email: Lower-cased login email; unique case-insensitively.
        role: USER for stored accounts, ADMIN only for the singleton admin.
        balance: Fiat balance. Non-negative after every completed operation.
        portfolio: Quantity held per asset type; every AssetType present.
        version: Optimistic-concurrency token, bumped on every balance change.
    """
    id: str
    name: str
    email: str
    balance: Decimal = ZERO
    portfolio: Dict[AssetType, Decimal] = field(default_factory=empty_portfolio)
    role: Role = Role.USER
    address: Optional[str] = None
    phone: Optional[str] = None
    version: int = 0

    def __post_init__(self):
        # Fill in asset types that are missing from a stored portfolio.
        full = empty_portfolio()
        for key, qty in self.portfolio.items():
            full[AssetType(key)] = qty if isinstance(qty, Decimal) else Decimal(str(qty))
        object.__setattr__(self, "portfolio", full)
        if not isinstance(self.balance, Decimal):
            object.__setattr__(self, "balance", Decimal(str(self.balance)))
        object.__setattr__(self, "role", Role(self.role))

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def holding(self, asset_type: AssetType) -> Decimal:
        return self.portfolio.get(AssetType(asset_type), ZERO)

    def with_balance(self, balance: Decimal) -> User:
        """Return a copy with a new balance and the next version."""
        return replace(self, balance=balance, version=self.version + 1)

    def with_holding(self, asset_type: AssetType, quantity: Decimal) -> User:
        portfolio = dict(self.portfolio)
        portfolio[AssetType(asset_type)] = quantity
        return replace(self, portfolio=portfolio)

    def to_dict(self) -> Dict[str, Any]:
        """Persisted JSON shape (camelCase, decimals as strings)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "address": self.address,
            "phone": self.phone,
            "role": self.role.value,
            "balance": str(self.balance),
            "portfolio": {t.value: str(q) for t, q in self.portfolio.items()},
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> User:
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            email=data.get("email") or "",
            address=data.get("address"),
            phone=data.get("phone"),
            role=Role(data.get("role") or Role.USER.value),
            balance=Decimal(str(data.get("balance") or "0")),
            portfolio={
                AssetType(k): Decimal(str(v if v is not None else "0"))
                for k, v in (data.get("portfolio") or {}).items()
                if k in AssetType.__members__
            },
            version=int(data.get("version") or 0),
        )

    def __repr__(self) -> str:
        return f"User({self.id}, {self.email}, balance={self.balance}, v{self.version})"


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A ledger record. Created once; afterwards only status may change.

    amount is an asset quantity for BUY/SELL and a fiat amount for
    DEPOSIT/WITHDRAW. total_value = amount * price_at_request.
    """
    id: str
    user_id: str
    user_name: str
    amount: Decimal
    price_at_request: Decimal
    total_value: Decimal
    type: TransactionType
    status: TransactionStatus
    date: datetime
    asset_type: Optional[AssetType] = None
    external_tx_id: Optional[str] = None
    payout_details: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "type", TransactionType(self.type))
        object.__setattr__(self, "status", TransactionStatus(self.status))
        if self.asset_type is not None:
            object.__setattr__(self, "asset_type", AssetType(self.asset_type))

    @property
    def is_pending(self) -> bool:
        return self.status is TransactionStatus.PENDING

    @property
    def is_fiat_request(self) -> bool:
        return self.type in (TransactionType.DEPOSIT, TransactionType.WITHDRAW)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "assetType": self.asset_type.value if self.asset_type else None,
            "amount": str(self.amount),
            "priceAtRequest": str(self.price_at_request),
            "totalValue": str(self.total_value),
            "type": self.type.value,
            "status": self.status.value,
            "date": self.date.isoformat(),
            "externalTxId": self.external_tx_id,
            "payoutDetails": self.payout_details,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Transaction:
        asset_type = data.get("assetType")
        return cls(
            id=data["id"],
            user_id=data["userId"],
            user_name=data.get("userName") or "",
            asset_type=AssetType(asset_type) if asset_type else None,
            amount=Decimal(str(data["amount"])),
            price_at_request=Decimal(str(data["priceAtRequest"])),
            total_value=Decimal(str(data["totalValue"])),
            type=TransactionType(data["type"]),
            status=TransactionStatus(data["status"]),
            date=_parse_datetime(data["date"]),
            external_tx_id=data.get("externalTxId"),
            payout_details=data.get("payoutDetails"),
        )

    def __repr__(self) -> str:
        asset = f" {self.asset_type.value}" if self.asset_type else ""
        return f"Transaction({self.id}: {self.type.value}{asset} {self.amount} [{self.status.value}])"


@dataclass(frozen=True, slots=True)
class PaymentGateway:
    """Deposit method configured by the admin. Keyed by name."""
    name: str
    active: bool = True
    api_key: str = ""
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    currency: Optional[str] = None
    min_deposit: Optional[Decimal] = None
    max_deposit: Optional[Decimal] = None
    fee_percent: Optional[Decimal] = None
    merchant_name: Optional[str] = None
    logo_url: Optional[str] = None
    link: Optional[str] = None

    def __post_init__(self):
        for name in ("min_deposit", "max_deposit", "fee_percent"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(str(value)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "active": self.active,
            "apiKey": self.api_key,
            "bankName": self.bank_name,
            "accountNumber": self.account_number,
            "currency": self.currency,
            "minDeposit": _json_number(self.min_deposit),
            "maxDeposit": _json_number(self.max_deposit),
            "feePercent": _json_number(self.fee_percent),
            "merchantName": self.merchant_name,
            "logoUrl": self.logo_url,
            "link": self.link,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PaymentGateway:
        return cls(
            name=data["name"],
            active=bool(data.get("active")),
            api_key=data.get("apiKey") or "",
            bank_name=data.get("bankName"),
            account_number=data.get("accountNumber"),
            currency=data.get("currency"),
            min_deposit=_decimal_or_none(data.get("minDeposit")),
            max_deposit=_decimal_or_none(data.get("maxDeposit")),
            fee_percent=_decimal_or_none(data.get("feePercent")),
            merchant_name=data.get("merchantName"),
            logo_url=data.get("logoUrl"),
            link=data.get("link"),
        )


# ============================================================================
# VALUATION
# ============================================================================

def compute_net_worth(user: User, assets: Iterable[Asset]) -> Decimal:
    """
    Fiat balance plus the market value of every catalog holding.

    Asset types in the catalog but absent from the portfolio count as zero.
    Assets are sorted by type before summation so the accumulation order,
    and therefore the result, does not depend on catalog order.

    Args:
        user: Account to value
        assets: Current catalog entries

    Returns:
        Net worth in fiat units
    """
    ordered = sorted(assets, key=lambda a: a.type.value)
    holdings_value = sum(
        (user.holding(asset.type) * asset.price for asset in ordered),
        ZERO,
    )
    return user.balance + holdings_value
