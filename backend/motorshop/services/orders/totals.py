"""Financial totals for repair orders.

``total_cost`` is the sum of net prices of completed services and
``is_fully_paid`` is ``down_payment >= total_cost``. Both live on the
order's motor-info row and are only written here.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from motorshop.core.logging import get_logger
from motorshop.database.models import OrderMotorInfo
from motorshop.services.orders.repository import OrderRepository

logger = get_logger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: object) -> Decimal:
    """Quantize a numeric value to cents, half-up."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    total_cost: Decimal
    down_payment: Decimal
    is_fully_paid: bool

    @property
    def remaining_balance(self) -> Decimal:
        return max(ZERO, self.total_cost - self.down_payment)


def compute_totals(
    completed_net_prices: Iterable[Decimal],
    down_payment: Optional[Decimal] = None,
) -> OrderTotals:
    """
    Derive totals from completed service prices and the down payment.

    Example:
        >>> compute_totals([Decimal("600.40"), Decimal("652.40")], Decimal("0"))
        OrderTotals(total_cost=Decimal('1252.80'), down_payment=Decimal('0.00'), is_fully_paid=False)
    """
    total = to_money(sum((to_money(price) for price in completed_net_prices), ZERO))
    paid = to_money(down_payment if down_payment is not None else ZERO)
    return OrderTotals(total_cost=total, down_payment=paid, is_fully_paid=paid >= total)


class TotalsRecalculator:
    """
    Keeps an order's motor-info totals in step with its services.

    Writes touch only the motor-info row and never call back into
    recalculation, so totals updates cannot cascade.
    """

    def __init__(self, repository: OrderRepository):
        self.repository = repository

    async def recalculate(self, order_id: int) -> OrderMotorInfo:
        """
        Re-derive total_cost and is_fully_paid from completed services.

        Pending service changes are flushed first so the sum sees them.
        A motor-info row is created with a zero down payment when the
        order has none.

        Returns:
            The updated (or newly created) motor-info row
        """
        await self.repository.flush()

        prices = await self.repository.get_completed_net_prices(order_id)
        motor_info = await self.repository.get_motor_info(order_id)

        if motor_info is None:
            motor_info = OrderMotorInfo(order_id=order_id, down_payment=ZERO)
            self.repository.add(motor_info)
            logger.info("Motor info created during recalculation", order_id=order_id)

        totals = compute_totals(prices, motor_info.down_payment)
        self._write(motor_info, totals)

        logger.info(
            "Order totals recalculated",
            order_id=order_id,
            completed_services=len(prices),
            total_cost=str(totals.total_cost),
            is_fully_paid=totals.is_fully_paid,
        )
        return motor_info

    async def apply_payment(
        self,
        order_id: int,
        down_payment: Optional[Decimal] = None,
        total_cost: Optional[Decimal] = None,
    ) -> OrderMotorInfo:
        """
        Write down_payment and/or total_cost directly and re-derive is_fully_paid.

        The service sum is not recomputed here; callers that also changed
        completion state follow up with ``recalculate``.
        """
        motor_info = await self.repository.get_motor_info(order_id)
        if motor_info is None:
            motor_info = OrderMotorInfo(order_id=order_id, down_payment=ZERO, total_cost=ZERO)
            self.repository.add(motor_info)

        totals = compute_totals(
            [total_cost if total_cost is not None else motor_info.total_cost],
            down_payment if down_payment is not None else motor_info.down_payment,
        )
        motor_info.down_payment = totals.down_payment
        self._write(motor_info, totals)

        logger.info(
            "Order payment updated",
            order_id=order_id,
            down_payment=str(totals.down_payment),
            total_cost=str(totals.total_cost),
            is_fully_paid=totals.is_fully_paid,
        )
        return motor_info

    @staticmethod
    def _write(motor_info: OrderMotorInfo, totals: OrderTotals) -> None:
        motor_info.total_cost = totals.total_cost
        motor_info.is_fully_paid = totals.is_fully_paid
