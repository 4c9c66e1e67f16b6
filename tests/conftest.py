"""Shared fixtures for the opportunity engine tests."""

import pytest

from opportunity_engine.models import (
    CostRange,
    IncomeRange,
    IncomeTimeframe,
    OpportunityType,
    RawOpportunity,
    RiskLevel,
    TimeRange,
)


def _make_opportunity(
    opportunity_id: str = "test-opp-1",
    title: str = "Test Opportunity",
    type: OpportunityType = OpportunityType.FREELANCE,
    income: tuple = (1000, 2000),
    hours: tuple = (5, 10),
    barrier: RiskLevel = RiskLevel.LOW,
    cost: tuple = (0, 100),
    source: str = "test",
    **fields,
) -> RawOpportunity:
    return RawOpportunity(
        id=opportunity_id,
        source=source,
        title=title,
        type=type,
        income=IncomeRange(income[0], income[1], IncomeTimeframe.MONTH),
        startup_cost=CostRange(*cost),
        time_required=TimeRange(*hours),
        entry_barrier=barrier,
        **fields,
    )


@pytest.fixture
def make_opportunity():
    """Factory for opportunities with sensible defaults."""
    return _make_opportunity
