"""Balance / allowance state per asset class."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class AssetType(str, Enum):
    """Asset classes tracked by the exchange's balance/allowance ledger."""

    COLLATERAL = "COLLATERAL"  # ERC-20 spend approval
    CONDITIONAL = "CONDITIONAL"  # ERC-1155 operator approval (sell side)


class AllowanceState(str, Enum):
    """Orchestrator progress.  Linear; never moves backwards."""

    UNKNOWN = "UNKNOWN"
    CHECKED = "CHECKED"
    SUFFICIENT = "SUFFICIENT"
    INSUFFICIENT_APPROVING = "INSUFFICIENT_APPROVING"
    APPROVED = "APPROVED"
    SYNCED = "SYNCED"


class AllowanceStatus(BaseModel):
    """Balance and approval state for one asset class.

    Amounts are raw integers (6 decimals for collateral).  ``approvals`` maps
    each exchange (spender / operator) to whether it is approved enough.
    """

    asset_type: AssetType
    balance: int = Field(default=0, ge=0)
    allowance: int = Field(default=0, ge=0)
    approvals: dict[str, bool] = Field(default_factory=dict)
    needs_approval: bool = False

    @property
    def spenders_needing_approval(self) -> list[str]:
        return [spender for spender, ok in self.approvals.items() if not ok]


class AllowanceReport(BaseModel):
    """Outcome of one ``ensure_allowance`` run."""

    wallet: str
    state: AllowanceState = AllowanceState.UNKNOWN
    collateral: AllowanceStatus | None = None
    conditional: AllowanceStatus | None = None
    tx_hashes: list[str] = Field(default_factory=list)
    synced: dict[AssetType, bool] = Field(default_factory=dict)
    sync_errors: dict[AssetType, str] = Field(default_factory=dict)

    @property
    def needs_approval(self) -> bool:
        return any(
            s is not None and s.needs_approval
            for s in (self.collateral, self.conditional)
        )
