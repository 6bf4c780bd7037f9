"""Entitlement derivation from seat type, membership status and plan flags."""
from typing import Mapping

from coop_billing.models.member import SeatType


def derive_entitlement(
    seat_type: SeatType,
    member_active: bool,
    subscription_flags: Mapping[str, bool],
) -> dict:
    """
    Compute a member's entitlement snapshot.

    A member is premium only while active and holding a seat. A premium
    member gets every flag the subscription grants; anyone else gets none.

    Args:
        seat_type: Seat the member holds
        member_active: Whether the member's status is active
        subscription_flags: Current subscription feature flags

    Returns:
        dict: {"premiumActive": bool, "features": {flag: bool}}
    """
    premium_active = bool(member_active) and SeatType(seat_type) != SeatType.NONE
    return {
        "premiumActive": premium_active,
        "features": {flag: premium_active and bool(enabled) for flag, enabled in subscription_flags.items()},
    }
