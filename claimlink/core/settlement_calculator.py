"""
Gas-aware settlement arithmetic.

The padded buffer only decides accept/reject. The amount actually sent is
`amount - estimated_gas_cost`, so the recipient is never charged the buffer.
Pure: no I/O, no settings lookups inside compute_settlement.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from claimlink.core.errors import AmountTooSmallAfterGas, AmountTooSmallForGas
from claimlink.settings import settings


@dataclass(frozen=True)
class GasPolicy:
    min_buffer: Decimal = Decimal("0.0005")
    buffer_fraction: Decimal = Decimal("0.01")
    max_buffer: Decimal = Decimal("0.005")
    min_settleable: Decimal = Decimal("0.0001")
    max_gas_fraction: Decimal = Decimal("0.9")


@dataclass(frozen=True)
class SettlementDecision:
    ok: bool
    settle_amount: Decimal
    gas_cost: Decimal
    buffer: Decimal
    required: Decimal
    reason: Optional[str] = None

    def raise_for_reason(self) -> None:
        if self.ok:
            return
        cls = AmountTooSmallForGas if self.reason == AmountTooSmallForGas.reason else AmountTooSmallAfterGas
        raise cls(
            f"{cls.user_message} Required: {self.required.normalize():f}, "
            f"available: {(self.settle_amount + self.gas_cost).normalize():f}.",
            required=self.required,
            available=self.settle_amount + self.gas_cost,
        )


def compute_buffer(amount: Decimal, policy: GasPolicy) -> Decimal:
    buffer = max(policy.min_buffer, amount * policy.buffer_fraction)
    return min(max(buffer, policy.min_buffer), policy.max_buffer)


def compute_settlement(amount, estimated_gas_cost, policy: GasPolicy) -> SettlementDecision:
    amount = Decimal(str(amount))
    gas = Decimal(str(estimated_gas_cost))
    buffer = compute_buffer(amount, policy)
    required = gas + buffer

    if required >= amount * policy.max_gas_fraction:
        return SettlementDecision(False, amount - gas, gas, buffer, required, AmountTooSmallForGas.reason)
    if amount - required < policy.min_settleable:
        return SettlementDecision(False, amount - gas, gas, buffer, required, AmountTooSmallAfterGas.reason)
    return SettlementDecision(True, amount - gas, gas, buffer, required)


def claim_policy() -> GasPolicy:
    return GasPolicy(
        min_buffer=Decimal(settings.CLAIM_MIN_GAS_BUFFER),
        buffer_fraction=Decimal(settings.CLAIM_GAS_BUFFER_FRACTION),
        max_buffer=Decimal(settings.CLAIM_MAX_GAS_BUFFER),
        min_settleable=Decimal(settings.CLAIM_MIN_SETTLEABLE),
        max_gas_fraction=Decimal(settings.CLAIM_MAX_GAS_FRACTION),
    )


def refund_policy() -> GasPolicy:
    """Sender-side safety buffer; other limits are shared with the claim policy."""
    return GasPolicy(
        min_buffer=Decimal(settings.REFUND_MIN_GAS_BUFFER),
        buffer_fraction=Decimal(settings.REFUND_GAS_BUFFER_FRACTION),
        max_buffer=Decimal(settings.REFUND_MAX_GAS_BUFFER),
        min_settleable=Decimal(settings.CLAIM_MIN_SETTLEABLE),
        max_gas_fraction=Decimal(settings.CLAIM_MAX_GAS_FRACTION),
    )
