from typing import Dict, NamedTuple, Optional

# Every pending session lives in [base_amount, base_amount + OFFSET_SLOTS - 1] centavos
OFFSET_SLOTS = 100
SESSION_TTL_SECONDS = 600
LOCK_DAYS = 30


class TierConfig(NamedTuple):
    name: str
    label: str
    rank: int
    base_amount: int          # centavos
    credits_on_purchase: int
    daily_cap: int            # -1 = governed by credit balance
    lock_days: int            # 0 = not a subscription tier

    @property
    def is_subscription(self) -> bool:
        return self.lock_days > 0


TIERS: Dict[str, TierConfig] = {
    "base": TierConfig("base", "Base Token", 0, 100, 10, -1, 0),
    "standard": TierConfig("standard", "Standard", 1, 200, 40, 40, LOCK_DAYS),
    "premium": TierConfig("premium", "Premium", 2, 300, 50, 50, LOCK_DAYS),
}

# Static-QR manual submissions (reference number typed in by the payer)
MANUAL_REFERENCE_TIERS: Dict[str, Dict[str, int]] = {
    "base": {"amount_centavos": 5000, "credits": 10},
}


def resolve_tier(name: Optional[str]) -> Optional[TierConfig]:
    """Case-insensitive lookup; None/empty means base."""
    return TIERS.get((name or "base").strip().lower())


def tier_rank(name: Optional[str]) -> int:
    cfg = TIERS.get((name or "").lower())
    return cfg.rank if cfg else -1


def get_daily_cap(name: Optional[str]) -> int:
    cfg = TIERS.get((name or "").lower())
    return cfg.daily_cap if cfg else -1
