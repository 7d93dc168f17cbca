"""Prize pool split between the winner and the house."""
from decimal import Decimal, ROUND_FLOOR

from minematch.types import Match, Payouts

HOUSE_FEE = 0.05  # 5%


def compute_payouts(stake_per_agent: int, roster_size: int, house_fee: float = HOUSE_FEE) -> Payouts:
    """Split stake * roster_size into winner and house amounts.

    The house takes floor(pool * fee); the winner gets the rest. The product
    is taken in Decimal so float representation error cannot move the floor.
    """
    pool = stake_per_agent * roster_size
    house = int((Decimal(pool) * Decimal(str(house_fee))).to_integral_value(rounding=ROUND_FLOOR))
    return Payouts(pool=pool, winner_amount=pool - house, house_amount=house)


def match_payouts(match: Match) -> Payouts:
    return compute_payouts(match.stake_amount, len(match.agents), match.config.house_fee)
