# crossarb/amm.py
"""
AMM pricing models

Both functions are pure and order-dependent: reserve_in is the reserve of
the asset being paid in, reserve_out the reserve of the asset being bought.
Passing them the wrong way round silently prices the opposite trade.
"""

from decimal import Decimal
from typing import Union

# (numerator, denominator) applied to the input amount
CONSTANT_PRODUCT_FEE = (997, 1000)   # Uniswap V2: 0.30%
BONDING_CURVE_FEE = (990, 1000)      # PumpSwap: 1.00%

Number = Union[int, float, Decimal]


def constant_product_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """
    Uniswap V2 getAmountOut, exact integer arithmetic (wei in, wei out)
    """
    if amount_in <= 0:
        return 0
    fee_num, fee_den = CONSTANT_PRODUCT_FEE
    amount_in_with_fee = int(amount_in) * fee_num
    numerator = amount_in_with_fee * int(reserve_out)
    denominator = int(reserve_in) * fee_den + amount_in_with_fee
    return numerator // denominator


def bonding_curve_amount_out(amount_in: Number, reserve_in: int, reserve_out: int) -> int:
    """
    PumpSwap output against virtual reserves.

    The reserves are read once per iteration and are not moved by simulated
    trades. Fractional input is floored to whole base units first so the
    result can only understate what the pool would pay.
    """
    amount_in = int(Decimal(amount_in)) if not isinstance(amount_in, int) else amount_in
    if amount_in <= 0:
        return 0
    fee_num, fee_den = BONDING_CURVE_FEE
    amount_in_with_fee = amount_in * fee_num
    numerator = amount_in_with_fee * int(reserve_out)
    denominator = int(reserve_in) * fee_den + amount_in_with_fee
    return numerator // denominator


def spot_price(reserve_in: int, reserve_out: int) -> Decimal:
    """Marginal price of the input asset in output units, ignoring fees"""
    if reserve_in <= 0:
        return Decimal(0)
    return Decimal(reserve_out) / Decimal(reserve_in)
