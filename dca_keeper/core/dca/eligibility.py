"""
DCA Eligibility

Pure scheduling checks: is an account due, and in which order should due
accounts be executed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .models import DcaAccount, DiscoveryOptions, EligibleOrder, TimeScale

_UNIT_MS = {
    TimeScale.SECONDS: 1_000,
    TimeScale.MINUTES: 60_000,
    TimeScale.HOURS: 3_600_000,
    TimeScale.DAYS: 86_400_000,
    TimeScale.WEEKS: 604_800_000,
    TimeScale.MONTHS: 2_592_000_000,
}


def now_ms() -> int:
    return int(time.time() * 1000)


def time_scale_to_ms(every: int, time_scale: int) -> int:
    """Interval length in ms. Unknown scales count as seconds, matching the contract."""
    try:
        unit = _UNIT_MS[TimeScale(time_scale)]
    except ValueError:
        unit = 1_000
    return every * unit


def next_execution_ms(account: DcaAccount) -> int:
    return account.last_time_ms + time_scale_to_ms(account.every, account.time_scale)


@dataclass(frozen=True)
class EligibilityCheck:
    eligible: bool
    reason: Optional[str] = None


def check_eligibility(account: DcaAccount, now: int) -> EligibilityCheck:
    """Return the first failing rule, if any."""
    if not account.active:
        return EligibilityCheck(False, "DCA is inactive")
    if account.remaining_orders <= 0:
        return EligibilityCheck(False, "No remaining orders")
    if account.input_balance <= 0:
        return EligibilityCheck(False, "No input balance")

    wait_ms = next_execution_ms(account) - now
    if wait_ms > 0:
        return EligibilityCheck(False, f"Not yet eligible, wait {wait_ms}ms")
    return EligibilityCheck(True)


def is_eligible(account: DcaAccount, now: int) -> bool:
    return check_eligibility(account, now).eligible


def matches_filters(account: DcaAccount, options: Optional[DiscoveryOptions]) -> bool:
    if options is None:
        return True
    if options.input_type and account.input_type != options.input_type:
        return False
    if options.output_type and account.output_type != options.output_type:
        return False
    if options.owner and account.owner != options.owner:
        return False
    return True


def to_eligible(account: DcaAccount, now: int) -> EligibleOrder:
    next_ms = next_execution_ms(account)
    return EligibleOrder(
        **{name: getattr(account, name) for name in DcaAccount.__dataclass_fields__},
        next_execution_ms=next_ms,
        ms_until_eligible=next_ms - now,
    )


def sort_by_urgency(orders: List[EligibleOrder]) -> List[EligibleOrder]:
    """Most overdue first. ``sorted`` is stable, so ties keep scan order."""
    return sorted(orders, key=lambda o: o.ms_until_eligible)


def filter_eligible(
    accounts: Iterable[DcaAccount],
    now: int,
    options: Optional[DiscoveryOptions] = None,
    sort: bool = True,
) -> List[EligibleOrder]:
    """Keep due accounts that pass the caller's filters."""
    eligible = [
        to_eligible(account, now)
        for account in accounts
        if is_eligible(account, now) and matches_filters(account, options)
    ]
    return sort_by_urgency(eligible) if sort else eligible


def effective_slippage_bps(account: DcaAccount) -> int:
    """Custom slippage if the owner set one, else the snapshot taken at creation."""
    if account.custom_slippage_bps is not None:
        return account.custom_slippage_bps
    return account.default_slippage_bps
