"""
Gamification rules: XP awards, badges and environmental impact.

Derived figures (impact, badge eligibility) are recomputed from stored
documents on every read. XP and streak are only ever changed through the
store's atomic increment.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List

logger = logging.getLogger(__name__)

KG_PER_ITEM = 0.5
CO2_PER_KG = 2.5

XP_AWARDS = {
    "pickup_scheduled": {"xp": 10},
    "pickup_completed": {"xp": 20, "streak": 1},
    "pledge_submitted": {"xp": 5},
}

BADGES = [
    (100, "Plastic Buster"),
    (200, "Paper Saver"),
    (500, "Eco Warrior"),
]


def _round_half_up(value: float, places: int = 0):
    exp = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(exp, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


def count_items(pickups: Iterable[dict]) -> int:
    return sum(len(p.get("materials") or []) for p in pickups)


def carbon_offset(items: int) -> int:
    return _round_half_up(items * KG_PER_ITEM * CO2_PER_KG)


def compute_impact(pickups: Iterable[dict]) -> dict:
    items = count_items(pickups)
    return {
        "itemsRecycled": items,
        "totalWeight": _round_half_up(items * KG_PER_ITEM, 1),
        "carbonOffset": carbon_offset(items),
    }


def derive_badges(xp: int) -> List[str]:
    return [label for threshold, label in BADGES if xp >= threshold]


def format_badges(badges: List[str]) -> str:
    return ", ".join(badges) if badges else "None"


def reconcile_badges(store, user: dict, badges: List[str]) -> bool:
    """Persist `badges` when it holds more labels than the user has stored.

    Only the counts are compared; a stored set with the same number of
    different labels is left as is, and nothing is ever pruned.
    """
    if len(badges) > len(user.get("badges") or []):
        store.set_fields("user", {"email": user["email"]}, {"badges": list(badges)})
        logger.info("Badges for %s updated to %s", user["email"], badges)
        return True
    return False


def award_xp(store, email: str, amount: int, streak: int = 0) -> bool:
    amounts = {"xp": amount}
    if streak:
        amounts["streak"] = streak
    matched = store.increment("user", {"email": email}, amounts)
    if not matched:
        logger.info("No user %s to award %s XP to", email, amount)
    return matched


def award(store, email: str, action: str) -> bool:
    """Apply the XP_AWARDS entry for `action` to the user"""
    rule = XP_AWARDS[action]
    return award_xp(store, email, rule["xp"], rule.get("streak", 0))
