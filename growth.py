"""
Growth simulator: expected referral successes over simulated days.

Model:
- A cohort of initial referrers becomes active on day 1.
- Each day, every active referrer succeeds with probability p (at most one
  success per day).
- A referrer retires after `capacity` lifetime successes.
- The expected successes of day d join as a new cohort on day d + 1.

Nothing here touches the referral forest; every function is pure in its
scalar inputs. All tolerances live in this module.
"""

import logging
import math
import operator
from itertools import islice
from typing import Callable, Iterator, Optional

from config import CAPACITY, INITIAL_REFERRERS, MAX_BONUS, MAX_DAYS
from errors import InvalidArgument

logger = logging.getLogger("referral.growth")

BONUS_INCREMENT = 10  # bonus offered in $10 increments
SURVIVAL_EPSILON = 1e-18  # cohorts less likely than this to be active are dropped
TARGET_TOLERANCE = 1e-12
MAX_DOUBLINGS = 64


def _check_probability(p: float) -> None:
    if not 0.0 <= p <= 1.0:
        raise InvalidArgument(f"Probability must be within [0, 1], got {p}.")


def _check_population(initial_referrers: int, capacity: int) -> None:
    if initial_referrers < 0:
        raise InvalidArgument(f"initial_referrers must be >= 0, got {initial_referrers}.")
    if capacity < 0:
        raise InvalidArgument(f"capacity must be >= 0, got {capacity}.")


class SurvivalTable:
    """
    table[t] = P(Binomial(t, p) < capacity): the chance a referrer still has
    capacity left after t attempts. Entries are computed on first access and
    kept, so one table serves any horizon.
    """

    def __init__(self, p: float, capacity: int):
        _check_probability(p)
        self.p = p
        self.capacity = capacity
        self._values: list[float] = []

    def __getitem__(self, t: int) -> float:
        self.extend_to(t)
        return self._values[t]

    @property
    def values(self) -> list[float]:
        """The computed entries; the same list grows as the table extends."""
        return self._values

    def __len__(self) -> int:
        return len(self._values)

    def extend_to(self, horizon: int) -> None:
        for t in range(len(self._values), horizon + 1):
            self._values.append(self._below_capacity(t))

    def _below_capacity(self, t: int) -> float:
        p, c = self.p, self.capacity
        if c <= 0:
            return 0.0
        if p == 0.0:
            return 1.0
        if p == 1.0:
            return 1.0 if t < c else 0.0
        if t < c:
            # fewer attempts than capacity, cannot be exhausted yet
            return 1.0

        # pmf(t, k) = pmf(t, k-1) * (t-k+1)/k * p/(1-p), from pmf(t, 0) = (1-p)^t,
        # run on logarithms: (1-p)^t alone underflows long before the sum does
        log_ratio = math.log(p) - math.log1p(-p)
        log_pmf = t * math.log1p(-p)
        logs = [log_pmf]
        for k in range(1, min(c - 1, t) + 1):
            log_pmf += math.log((t - k + 1) / k) + log_ratio
            logs.append(log_pmf)
        peak = max(logs)
        return min(1.0, math.exp(peak) * math.fsum(math.exp(x - peak) for x in logs))


def survival_probabilities(p: float, horizon: int, capacity: int = CAPACITY) -> list[float]:
    """P(Binomial(t, p) < capacity) for t = 0..horizon."""
    if horizon < 0:
        raise InvalidArgument(f"horizon must be >= 0, got {horizon}.")
    table = SurvivalTable(p, capacity)
    table.extend_to(horizon)
    return list(table.values)


def _daily_successes(p: float, initial_referrers: int, capacity: int) -> Iterator[float]:
    """
    Expected new successes for day 1, 2, ... without end.

    cohorts[s] is the size of the cohort that became active on day s + 1; on
    day d its members have made d - s - 1 attempts already.
    """
    survival = SurvivalTable(p, capacity)
    values = survival.values
    cohorts: list[float] = [float(initial_referrers)]
    oldest = 0
    while True:
        day = len(cohorts)
        survival.extend_to(day - 1)
        # survival is non-increasing in attempts, so only the front of the window can decay out
        while oldest < day and values[day - 1 - oldest] < SURVIVAL_EPSILON:
            oldest += 1
        if oldest < day:
            # cohort s pairs with values[day - 1 - s]
            weights = values[day - 1 - oldest::-1]
            successes = p * math.fsum(map(operator.mul, cohorts[oldest:], weights))
        else:
            successes = 0.0
        cohorts.append(successes)
        yield successes


def simulate(
    p: float,
    days: int,
    initial_referrers: int = INITIAL_REFERRERS,
    capacity: int = CAPACITY,
) -> list[float]:
    """
    Expected cumulative successes at the end of each day.

    Returns a list of length days + 1 where index 0 is 0.0 and index d is the
    expected number of successful referrals made on days 1..d.
    """
    _check_probability(p)
    _check_population(initial_referrers, capacity)
    if days < 0:
        raise InvalidArgument(f"days must be >= 0, got {days}.")

    cumulative = [0.0]
    total = 0.0
    for successes in islice(_daily_successes(p, initial_referrers, capacity), days):
        total += successes
        cumulative.append(total)
    return cumulative


def days_to_target(
    p: float,
    target_total: float,
    initial_referrers: int = INITIAL_REFERRERS,
    capacity: int = CAPACITY,
    max_days_limit: int = MAX_DAYS,
) -> Optional[int]:
    """
    First day on which expected cumulative successes reach target_total.

    Returns None if the target is not reached within max_days_limit days.
    """
    _check_probability(p)
    _check_population(initial_referrers, capacity)
    if target_total <= 0:
        return 0
    if max_days_limit < 0:
        raise InvalidArgument(f"max_days_limit must be >= 0, got {max_days_limit}.")
    if p == 0.0 or capacity == 0 or initial_referrers == 0:
        # nobody can ever succeed
        return None

    total = 0.0
    for day, successes in enumerate(_daily_successes(p, initial_referrers, capacity), start=1):
        if day > max_days_limit:
            break
        total += successes
        if total >= target_total - TARGET_TOLERANCE:
            return day
    return None


def min_bonus_for_target(
    days: int,
    target_hires: float,
    adoption_prob: Callable[[int], float],
    epsilon: float = 1e-3,
    max_bonus: int = MAX_BONUS,
    initial_referrers: int = INITIAL_REFERRERS,
    capacity: int = CAPACITY,
) -> Optional[int]:
    """
    Find minimum bonus ($10 increments) so that target_hires is reached
    within `days` days.

    Args:
        days: deadline in simulated days
        target_hires: expected cumulative successes required
        adoption_prob: black-box function mapping bonus -> probability
            (monotonic non-decreasing, expensive; called at most once per bonus)
        epsilon: tolerance on adoption_prob results. Values within epsilon
            outside [0, 1] are clamped, anything further out is rejected.
        max_bonus: largest bonus considered

    Returns:
        Smallest sufficient bonus, or None if no bonus up to max_bonus works.
    """
    if days < 0:
        raise InvalidArgument(f"days must be >= 0, got {days}.")
    if max_bonus < 0:
        raise InvalidArgument(f"max_bonus must be >= 0, got {max_bonus}.")

    probabilities: dict[int, float] = {}

    def probability(bonus: int) -> float:
        if bonus not in probabilities:
            p = float(adoption_prob(bonus))
            if not -epsilon <= p <= 1.0 + epsilon:
                raise InvalidArgument(f"adoption_prob({bonus}) returned {p}, outside [0, 1].")
            probabilities[bonus] = min(1.0, max(0.0, p))
        return probabilities[bonus]

    def reaches_target(bonus: int) -> bool:
        day = days_to_target(
            probability(bonus), target_hires, initial_referrers, capacity, max_days_limit=days
        )
        logger.debug(f"bonus={bonus} p={probability(bonus)} -> day {day}")
        return day is not None

    if reaches_target(0):
        return 0

    # only whole increments are offered
    ceiling = max_bonus // BONUS_INCREMENT * BONUS_INCREMENT

    # Phase 1: find upper bound, exponentially increasing.
    low, high = 0, BONUS_INCREMENT
    for _ in range(MAX_DOUBLINGS):
        if high >= ceiling:
            high = ceiling
            if high <= low or not reaches_target(high):
                logger.info(f"Target {target_hires} in {days} days unreachable up to bonus {max_bonus}")
                return None
            break
        if reaches_target(high):
            break
        if probability(high) >= 1.0:
            logger.info(f"Target {target_hires} in {days} days unreachable at p=1")
            return None  # max probability, still can't reach
        low = high
        high *= 2
    else:
        logger.info(f"No sufficient bonus found within {MAX_DOUBLINGS} doublings")
        return None

    # Phase 2: binary search over increments, low insufficient and high sufficient.
    lo, hi = low // BONUS_INCREMENT, high // BONUS_INCREMENT
    while hi - lo > 1:
        mid = (lo + hi) // 2
        if reaches_target(mid * BONUS_INCREMENT):
            hi = mid
        else:
            lo = mid

    bonus = hi * BONUS_INCREMENT
    logger.info(f"Minimum bonus for {target_hires} hires in {days} days: {bonus}")
    return bonus
