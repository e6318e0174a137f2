"""
catalog.py - Asset catalog and simulated price feed

Provides the fixed set of tradable assets and the price process that moves
them:

- DEFAULT_ASSETS: The starting catalog
- fluctuate_prices(): One bounded random-walk step over a list of assets
- AssetCatalog: Current prices, price lookup, and interval-driven ticking

Prices are quoted in the base fiat currency. Membership of the catalog is
static; only price and change_24h move, and never under user control.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Dict, Iterable, List, Optional

import numpy as np

from .core import Asset, AssetType, PRICE_QUANTUM, CHANGE_QUANTUM

logger = logging.getLogger(__name__)


DEFAULT_ASSETS: List[Asset] = [
    Asset(AssetType.BITCOIN, "Bitcoin", "BTC", Decimal("94250.50"), Decimal("2.1"), "#F7931A"),
    Asset(AssetType.ANTIMATTER, "Anti-Matter Particles", "AM", Decimal("625000000"), Decimal("0.05"), "#D8B4FE"),
    Asset(AssetType.AI_COMPUTE, "AGI Compute Tokens", "AIX", Decimal("125400.00"), Decimal("8.4"), "#22D3EE"),
    Asset(AssetType.NEURAL_LINK, "Neural Link Arrays", "NLA", Decimal("45200.00"), Decimal("-1.2"), "#FB7185"),
    Asset(AssetType.FUSION_ENERGY, "Fusion Energy Credits", "FEC", Decimal("8500.00"), Decimal("4.7"), "#34D399"),
    Asset(AssetType.DIAMOND, "Blue Diamond", "DMD", Decimal("15500.00"), Decimal("-0.2"), "#60A5FA"),
    Asset(AssetType.GOLD, "24K Gold", "XAU", Decimal("2750.80"), Decimal("0.4"), "#FACC15"),
]

HIGH_VOLATILITY_TYPES = frozenset({
    AssetType.BITCOIN,
    AssetType.AI_COMPUTE,
    AssetType.FUSION_ENERGY,
})
HIGH_VOLATILITY = 0.015
LOW_VOLATILITY = 0.005

# Per-tick drift of the cosmetic change_24h figure, in percentage points.
CHANGE_24H_DRIFT = 0.2

DEFAULT_TICK_SECONDS = 15


def volatility_for(asset_type: AssetType) -> float:
    return HIGH_VOLATILITY if asset_type in HIGH_VOLATILITY_TYPES else LOW_VOLATILITY


def fluctuate_prices(assets: Iterable[Asset], rng: np.random.Generator) -> List[Asset]:
    """
    Apply one random-walk step to every asset.

    Each price is multiplied by 1 + U(-v, v) where v is the asset's
    volatility, then rounded to cents. change_24h drifts by
    U(-0.2, 0.2) and is rounded to two places.

    Args:
        assets: Assets to move
        rng: numpy Generator supplying the uniform draws

    Returns:
        New list of Asset records, same order as the input
    """
    assets = list(assets)
    if not assets:
        return []
    vols = np.array([volatility_for(a.type) for a in assets])
    steps = 1.0 + rng.uniform(-vols, vols)
    drifts = rng.uniform(-CHANGE_24H_DRIFT, CHANGE_24H_DRIFT, size=len(assets))

    moved = []
    for asset, step, drift in zip(assets, steps, drifts):
        price = (asset.price * Decimal(repr(float(step)))).quantize(PRICE_QUANTUM)
        if price <= 0:
            # Prices never drop below one cent.
            price = PRICE_QUANTUM
        change = (asset.change_24h + Decimal(repr(float(drift)))).quantize(CHANGE_QUANTUM)
        moved.append(replace(asset, price=price, change_24h=change))
    return moved


class AssetCatalog:
    """
    The live asset catalog.

    Holds the current Asset records and moves their prices one step per tick
    interval. Ticks are driven by advance_to() with an explicit clock, so the
    catalog never starts a thread of its own.

    Example:
        catalog = AssetCatalog(seed=7)
        catalog.get_price(AssetType.BITCOIN)      # Decimal('94250.50')
        catalog.advance_to(start + timedelta(seconds=45))   # three ticks
    """

    def __init__(
        self,
        assets: Optional[Iterable[Asset]] = None,
        tick_seconds: int = DEFAULT_TICK_SECONDS,
        seed: Optional[int] = None,
        start_time: Optional[datetime] = None,
    ):
        self._assets: Dict[AssetType, Asset] = {}
        for asset in (DEFAULT_ASSETS if assets is None else assets):
            if asset.type in self._assets:
                raise ValueError(f"Asset {asset.type.value} listed twice")
            self._assets[asset.type] = asset
        if tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be positive, got {tick_seconds}")
        self.tick_interval = timedelta(seconds=tick_seconds)
        self._rng = np.random.default_rng(seed)
        self._last_tick: Optional[datetime] = start_time
        self.ticks = 0

    def assets(self) -> List[Asset]:
        """Current catalog entries in listing order."""
        return list(self._assets.values())

    def asset_types(self) -> List[AssetType]:
        return list(self._assets.keys())

    def __contains__(self, asset_type) -> bool:
        return AssetType(asset_type) in self._assets

    def __len__(self) -> int:
        return len(self._assets)

    def get_asset(self, asset_type: AssetType) -> Asset:
        try:
            return self._assets[AssetType(asset_type)]
        except (KeyError, ValueError):
            raise KeyError(f"Asset {asset_type} is not in the catalog") from None

    def get_price(self, asset_type: AssetType) -> Decimal:
        return self.get_asset(asset_type).price

    def get_prices(self) -> Dict[AssetType, Decimal]:
        return {t: a.price for t, a in self._assets.items()}

    def tick(self) -> List[Asset]:
        """Move every price by one random-walk step."""
        moved = fluctuate_prices(self._assets.values(), self._rng)
        self._assets = {a.type: a for a in moved}
        self.ticks += 1
        return moved

    def advance_to(self, now: datetime) -> int:
        """
        Apply one tick per full interval elapsed since the last tick.

        The first call only starts the clock.

        Returns:
            Number of ticks applied
        """
        if self._last_tick is None:
            self._last_tick = now
            return 0
        if now < self._last_tick:
            raise ValueError(f"Cannot move time backwards: {now} < {self._last_tick}")
        count = int((now - self._last_tick) / self.tick_interval)
        for _ in range(count):
            self.tick()
        self._last_tick += self.tick_interval * count
        if count:
            logger.debug("Applied %d price tick(s); catalog at tick %d", count, self.ticks)
        return count

    def __repr__(self):
        return f"AssetCatalog({len(self._assets)} assets, tick={self.tick_interval.total_seconds():g}s)"
