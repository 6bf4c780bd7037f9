"""Unit tests for entitlement derivation."""
from coop_billing.catalog import ALL_FLAGS_ON, BASIC_FLAGS, FeatureFlag
from coop_billing.models.member import SeatType
from coop_billing.utils.entitlement import derive_entitlement


def test_active_seat_holder_gets_every_subscription_flag() -> None:
    """An active member with a seat mirrors the subscription flags exactly."""
    entitlement = derive_entitlement(SeatType.PAID, True, BASIC_FLAGS)

    assert entitlement["premiumActive"] is True
    assert entitlement["features"] == BASIC_FLAGS


def test_sponsored_seat_is_premium_too() -> None:
    entitlement = derive_entitlement(SeatType.SPONSORED, True, ALL_FLAGS_ON)

    assert entitlement["premiumActive"] is True
    assert all(entitlement["features"].values())


def test_seatless_member_gets_no_flags() -> None:
    """Flags are never partially granted: no seat means every flag off."""
    entitlement = derive_entitlement(SeatType.NONE, True, ALL_FLAGS_ON)

    assert entitlement["premiumActive"] is False
    assert set(entitlement["features"]) == set(ALL_FLAGS_ON)
    assert not any(entitlement["features"].values())


def test_inactive_member_with_seat_gets_no_flags() -> None:
    entitlement = derive_entitlement(SeatType.PAID, False, ALL_FLAGS_ON)

    assert entitlement["premiumActive"] is False
    assert not any(entitlement["features"].values())


def test_disabled_subscription_flag_stays_disabled() -> None:
    flags = {FeatureFlag.MARKET_ORACLE.value: False, FeatureFlag.TRAINING.value: True}

    entitlement = derive_entitlement(SeatType.PAID, True, flags)

    assert entitlement["features"] == {"marketOracle": False, "training": True}


def test_seat_type_accepts_plain_strings() -> None:
    entitlement = derive_entitlement("sponsored", True, {"training": True})

    assert entitlement == {"premiumActive": True, "features": {"training": True}}
