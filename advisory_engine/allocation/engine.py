"""Deterministic asset allocation from risk tolerance and age."""
from typing import Dict, Tuple

from advisory_engine.app.schemas import AllocationResult, Profile, ProfileSummary

# (stocks, bonds, cash) in percent
BASE_ALLOCATION: Dict[str, Tuple[float, float, float]] = {
    "low": (40, 50, 10),
    "moderate": (60, 35, 5),
    "high": (80, 15, 5),
}
DEFAULT_RISK_TOLERANCE = "moderate"

STOCKS_FLOOR = 20
BONDS_CEILING = 70


def age_adjustment(current_age: int) -> float:
    """Zero up to age 30, then half a point per year, capped at 15 from age 60."""
    return min(max(current_age - 30, 0), 30) / 2


def recommend_allocation(risk_tolerance: str, current_age: int) -> AllocationResult:
    base_stocks, base_bonds, base_cash = BASE_ALLOCATION.get(
        risk_tolerance, BASE_ALLOCATION[DEFAULT_RISK_TOLERANCE]
    )
    adj = age_adjustment(current_age)
    # Clamped values are not re-normalized; the three can sum to something other than 100.
    return AllocationResult(
        stocks=max(base_stocks - adj, STOCKS_FLOOR),
        bonds=min(base_bonds + adj, BONDS_CEILING),
        cash=base_cash,
    )


def allocation_for_profile(profile: Profile) -> AllocationResult:
    return recommend_allocation(profile.risk_tolerance, profile.current_age)


def summarize_profile(profile: Profile) -> ProfileSummary:
    return ProfileSummary(
        profile=profile,
        years_to_retirement=profile.target_retirement_age - profile.current_age,
        yearly_contribution=profile.monthly_contribution * 12,
        allocation=allocation_for_profile(profile),
    )
