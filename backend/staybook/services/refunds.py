"""Cancellation refund calculation."""

from staybook.models.enums import CancellationPolicy

# (minimum days before check-in, refund percent), most generous tier first.
# Lead times below every threshold refund nothing.
REFUND_TIERS: dict[CancellationPolicy, tuple[tuple[int, int], ...]] = {
    CancellationPolicy.FLEXIBLE: ((1, 100),),
    CancellationPolicy.MODERATE: ((5, 100), (1, 50)),
    CancellationPolicy.STRICT: ((7, 50),),
    CancellationPolicy.SUPER_STRICT: (),
}


def refund_percent(days_until_check_in: int, policy: CancellationPolicy) -> int:
    """Refund percentage for the given lead time under ``policy``."""
    for min_days, percent in REFUND_TIERS[CancellationPolicy(policy)]:
        if days_until_check_in >= min_days:
            return percent
    return 0


def calculate_refund(total: int, days_until_check_in: int, policy: CancellationPolicy) -> int:
    """Refund amount in minor units.

    Pure and monotonic: for a fixed policy, more lead time never yields a
    smaller refund. Partial tiers round half-up to the cent.
    """
    if total <= 0:
        return 0
    percent = refund_percent(days_until_check_in, policy)
    return (total * percent + 50) // 100
