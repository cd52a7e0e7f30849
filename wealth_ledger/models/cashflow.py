"""
Cash-Flow Bridge Models

Result types of the cash-flow bridge report: the opening cash position, the
three attributed buckets and the closing position, each with drill-down
detail.

DESIGN DECISION: The bridge is an ordered list of named steps. The waterfall
chart consumes `to_waterfall()` directly, so step order is part of the
contract.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from wealth_ledger.models.ledger import (
    TransactionGroup,
    TransactionType,
    ZERO,
)


class CashFlowBucket(str, Enum):
    """Attribution buckets of the bridge."""
    OPERATING = "Operating"
    INVESTING = "Investing"
    FINANCING = "Financing"


class FlowDirection(str, Enum):
    """Direction of a cash movement relative to the cash pool."""
    INFLOW = "inflow"
    OUTFLOW = "outflow"


class MatchedRule(str, Enum):
    """Which rule table decided a classification."""
    TYPE = "type"
    GROUP = "group"
    CATEGORY = "category"
    FALLBACK = "fallback"


class BridgeStepName(str, Enum):
    OPENING = "opening"
    OPERATING = "operating"
    INVESTING = "investing"
    FINANCING = "financing"
    CLOSING = "closing"


class ReportPeriod(str, Enum):
    """Preset reporting periods of the bridge screen."""
    WEEK = "WEEK"
    MONTH = "MONTH"
    YEAR = "YEAR"


class Classification(BaseModel):
    """Outcome of classifying one transaction."""

    bucket: CashFlowBucket
    matched_rule: MatchedRule
    matched_key: Optional[str] = Field(
        default=None,
        description="Type, group or category value that matched (None on fallback)"
    )


class BridgeDetail(BaseModel):
    """One transaction's contribution to a bridge bucket."""

    transaction_id: str
    occurred_at: datetime
    amount: Decimal = Field(
        ...,
        description="Signed: positive for inflow, negative for outflow"
    )
    direction: FlowDirection
    cash_account_id: str
    counterparty_account_id: str
    type: TransactionType
    group: TransactionGroup
    category: str = ""
    bucket: CashFlowBucket
    matched_rule: MatchedRule
    note: Optional[str] = None


class BridgeStep(BaseModel):
    """A named, signed step of the waterfall."""

    name: BridgeStepName
    value: Decimal
    details: list[BridgeDetail] = Field(default_factory=list)


class CashFlowBridge(BaseModel):
    """
    Opening cash, attributed flows and closing cash for a period.

    Identity: opening + operating + investing + financing == closing.
    """

    period_start: datetime
    period_end: Optional[datetime] = Field(
        default=None,
        description="None means the period runs until now"
    )
    cash_account_ids: list[str] = Field(default_factory=list)
    steps: list[BridgeStep] = Field(default_factory=list)

    def _step(self, name: BridgeStepName) -> BridgeStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name.value)

    @property
    def opening(self) -> Decimal:
        return self._step(BridgeStepName.OPENING).value

    @property
    def operating(self) -> Decimal:
        return self._step(BridgeStepName.OPERATING).value

    @property
    def investing(self) -> Decimal:
        return self._step(BridgeStepName.INVESTING).value

    @property
    def financing(self) -> Decimal:
        return self._step(BridgeStepName.FINANCING).value

    @property
    def closing(self) -> Decimal:
        return self._step(BridgeStepName.CLOSING).value

    @property
    def net_change(self) -> Decimal:
        return self.operating + self.investing + self.financing

    @property
    def has_bridge(self) -> bool:
        return True

    def details_for(self, bucket: CashFlowBucket) -> list[BridgeDetail]:
        """Drill-down list of one bucket."""
        return self._step(BridgeStepName(bucket.value.lower())).details

    def to_waterfall(self) -> list[dict]:
        """Ordered steps as plain dicts for the chart layer."""
        return [
            {
                "name": step.name.value,
                "value": str(step.value),
                "details": [d.model_dump(mode="json") for d in step.details],
            }
            for step in self.steps
        ]


class NoCashAccounts(BaseModel):
    """
    Returned instead of a bridge when no cash account exists.

    The screen shows an empty state; there is no cash pool to bridge.
    """

    period_start: datetime
    period_end: Optional[datetime] = None
    reason: str = "No cash accounts configured"
    opening: Decimal = ZERO
    closing: Decimal = ZERO

    @property
    def has_bridge(self) -> bool:
        return False
