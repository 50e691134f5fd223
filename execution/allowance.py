"""AllowanceOrchestrator — make a wallet's funds spendable by the exchange.

::

    UNKNOWN → CHECKED → SUFFICIENT
                      → INSUFFICIENT_APPROVING → APPROVED → SYNCED

Collateral (ERC-20) and outcome tokens (ERC-1155, sell side only) are
tracked independently, each against both exchanges.  On-chain state is the
source of truth: once an approval is mined it is never rolled back, and a
failed exchange sync only leaves the report at ``APPROVED`` with the error
recorded.
"""

from __future__ import annotations

from typing import Sequence

import structlog
from web3 import Web3

from core.errors import AddressMismatch, ClobCoreError
from data.rest_client import ClobRestClient
from models.allowance import AllowanceReport, AllowanceState, AllowanceStatus, AssetType
from models.auth import ApiCredentials
from web3_infra.approvals import ApprovalAdapter

logger = structlog.get_logger("execution.allowance")


class AllowanceOrchestrator:
    """Check, approve and sync balances/allowances for one wallet at a time.

    Parameters
    ----------
    approvals:
        On-chain reads and approval transactions.
    rest_client:
        Used for the exchange's balance/allowance sync endpoint.
    exchanges:
        Spender / operator addresses (regular and neg-risk exchange).
    signature_type:
        Forwarded to the sync endpoint.
    """

    def __init__(
        self,
        approvals: ApprovalAdapter,
        rest_client: ClobRestClient,
        exchanges: Sequence[str],
        signature_type: int = 0,
    ) -> None:
        if not exchanges:
            raise ValueError("At least one exchange address is required")
        self._approvals = approvals
        self._rest = rest_client
        self._exchanges = [Web3.to_checksum_address(a) for a in exchanges]
        self._signature_type = signature_type

    # ── Public API ───────────────────────────────────────────────

    async def check(
        self, wallet: str, include_conditional: bool = False
    ) -> AllowanceReport:
        """Read on-chain state only.  Report ends in ``CHECKED``."""
        wallet = Web3.to_checksum_address(wallet)
        report = AllowanceReport(wallet=wallet)

        report.collateral = await self._check_collateral(wallet)
        if include_conditional:
            report.conditional = await self._check_conditional(wallet)
        report.state = AllowanceState.CHECKED

        logger.info(
            "allowance.checked",
            wallet=wallet,
            collateral_balance=report.collateral.balance,
            collateral_allowance=report.collateral.allowance,
            needs_approval=report.needs_approval,
        )
        return report

    async def ensure_allowance(
        self,
        wallet: str,
        credentials: ApiCredentials,
        include_conditional: bool = False,
    ) -> AllowanceReport:
        """Approve whatever is missing, then sync the exchange ledger.

        Raises
        ------
        AddressMismatch
            *wallet* is not the address the signing capability sends from.
        AllowanceError
            An approval transaction failed; earlier approvals stay mined.
        SignerRejected, WrongChain
            From the signing capability.
        """
        active = await self._approvals.active_address()
        if active.lower() != wallet.lower():
            raise AddressMismatch(wallet, active)

        report = await self.check(wallet, include_conditional)
        if not report.needs_approval:
            report.state = AllowanceState.SUFFICIENT
            logger.info("allowance.sufficient", wallet=report.wallet)
            return report

        report.state = AllowanceState.INSUFFICIENT_APPROVING
        approved: list[AssetType] = []

        if report.collateral is not None and report.collateral.needs_approval:
            for spender in report.collateral.spenders_needing_approval:
                result = await self._approvals.approve_collateral(spender)
                report.tx_hashes.append(result.tx_hash)
            approved.append(AssetType.COLLATERAL)

        if report.conditional is not None and report.conditional.needs_approval:
            for operator in report.conditional.spenders_needing_approval:
                result = await self._approvals.set_approval_for_all(operator)
                report.tx_hashes.append(result.tx_hash)
            approved.append(AssetType.CONDITIONAL)

        report.state = AllowanceState.APPROVED
        logger.info("allowance.approved", wallet=report.wallet, tx_hashes=report.tx_hashes)

        for asset_type in approved:
            await self._sync(report, asset_type, credentials)

        if all(report.synced.get(a) for a in approved):
            report.state = AllowanceState.SYNCED
        return report

    # ── Internals ────────────────────────────────────────────────

    async def _check_collateral(self, wallet: str) -> AllowanceStatus:
        balance = await self._approvals.collateral_balance(wallet)
        allowances = {
            spender: await self._approvals.collateral_allowance(wallet, spender)
            for spender in self._exchanges
        }
        # A zero balance never needs an approval.
        approvals = {s: balance == 0 or a >= balance for s, a in allowances.items()}
        return AllowanceStatus(
            asset_type=AssetType.COLLATERAL,
            balance=balance,
            allowance=min(allowances.values()),
            approvals=approvals,
            needs_approval=not all(approvals.values()),
        )

    async def _check_conditional(self, wallet: str) -> AllowanceStatus:
        approvals = {
            operator: await self._approvals.is_approved_for_all(wallet, operator)
            for operator in self._exchanges
        }
        return AllowanceStatus(
            asset_type=AssetType.CONDITIONAL,
            approvals=approvals,
            needs_approval=not all(approvals.values()),
        )

    async def _sync(
        self,
        report: AllowanceReport,
        asset_type: AssetType,
        credentials: ApiCredentials,
    ) -> None:
        try:
            await self._rest.update_balance_allowance(
                asset_type, report.wallet, credentials, self._signature_type
            )
        except ClobCoreError as exc:
            logger.warning(
                "allowance.sync_failed",
                wallet=report.wallet,
                asset_type=asset_type.value,
                error=exc.message,
                status=exc.status_code,
            )
            report.synced[asset_type] = False
            report.sync_errors[asset_type] = exc.message
            return

        report.synced[asset_type] = True
        logger.info("allowance.synced", wallet=report.wallet, asset_type=asset_type.value)
