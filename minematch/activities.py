"""Temporal activities for the parts of a match that touch the outside world."""
import os
from temporalio import activity

from minematch.payouts import compute_payouts
from minematch.types import Payouts, SeedRequest, SettlementRequest


@activity.defn
async def draw_seed_material(request: SeedRequest) -> str:
    """Draw entropy for a match seed.

    An externally supplied blockhash is used as-is; otherwise 32 random bytes
    are drawn from the OS. The engine mixes this with the match id, so the
    material itself is never the seed.
    """
    if request.blockhash:
        activity.logger.info(f"Using external blockhash for match {request.match_id}")
        return request.blockhash

    activity.logger.info(f"Drawing OS entropy for match {request.match_id}")
    return os.urandom(32).hex()


@activity.defn
async def settle_match(request: SettlementRequest) -> Payouts:
    """Compute the payout split and record the settlement.

    Funds are moved by the escrow service, which picks settlements up from
    this record; nothing here transfers anything.
    """
    payouts = compute_payouts(request.stake_amount, request.roster_size, request.house_fee)
    activity.logger.info(
        f"Match {request.match_id} settled: winner {request.winner} receives "
        f"{payouts.winner_amount}, house receives {payouts.house_amount} "
        f"(pool {payouts.pool}, seed {request.seed})"
    )
    return payouts
