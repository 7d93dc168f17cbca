"""Temporal workflow driving a single match."""
import asyncio
from datetime import timedelta
from typing import List
from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ApplicationError

with workflow.unsafe.imports_passed_through():
    from minematch import engine
    from minematch.activities import draw_seed_material, settle_match
    from minematch.board import board_view
    from minematch.errors import MatchError, NotActive, NotForming
    from minematch.types import (
        CellView,
        CreateMatchRequest,
        JoinRequest,
        Match,
        MatchStatus,
        MatchSummary,
        Move,
        MoveRequest,
        Payouts,
        PublicState,
        RoundResult,
        SeedRequest,
        SettlementRequest,
        VerificationRecord,
    )

# Abandon a match whose roster never fills
FORMING_TIMEOUT = timedelta(hours=24)
# Keep a settled match queryable this long unless closed earlier
SETTLED_RETENTION = timedelta(hours=24)


def _rejected(error: MatchError) -> ApplicationError:
    return ApplicationError(error.message, type=error.code, non_retryable=True)


@workflow.defn
class MatchWorkflow:
    """Workflow that owns one match from formation to settlement.

    Updates and the round loop run on the same single-threaded workflow
    event loop, so a round is always resolved against a stable snapshot of
    pending moves.
    """

    def __init__(self):
        self.match_id: str = ""
        self.match: Match | None = None
        self.payouts: Payouts | None = None
        self.should_close: bool = False

    @workflow.run
    async def run(self, match_id: str, request: CreateMatchRequest) -> MatchSummary:
        """Main workflow entry point."""
        self.match_id = match_id
        self.match = engine.create_match(
            match_id,
            request.stake_amount,
            creator=request.creator,
            config=request.config,
            now=workflow.time(),
            log=workflow.logger,
        )
        match = self.match

        try:
            await workflow.wait_condition(
                lambda: self.should_close or len(match.agents) >= match.config.capacity,
                timeout=FORMING_TIMEOUT,
            )
        except asyncio.TimeoutError:
            workflow.logger.info(f"Match {match_id} abandoned: roster did not fill")
            return self._summary()

        if self.should_close:
            workflow.logger.info(f"Match {match_id} closed while forming")
            return self._summary()

        seed_material = await workflow.execute_activity(
            draw_seed_material,
            SeedRequest(match_id=match_id, blockhash=request.blockhash),
            start_to_close_timeout=timedelta(seconds=60),
        )
        engine.activate_match(match, seed_material, now=workflow.time(), log=workflow.logger)
        workflow.logger.info(f"Match {match_id} started with {len(match.agents)} agents")

        while match.status == MatchStatus.ACTIVE:
            await workflow.sleep(max(0.0, match.round_deadline - workflow.time()))
            result = engine.resolve_round(match, now=workflow.time(), log=workflow.logger)
            workflow.logger.info(
                f"Match {match_id} round {result.round}: {len(result.moves)} moves, "
                f"{len(result.eliminations)} eliminated, {len(result.revealed_cells)} cells revealed"
            )

        self.payouts = await workflow.execute_activity(
            settle_match,
            SettlementRequest(
                match_id=match_id,
                winner=match.winner,
                stake_amount=match.stake_amount,
                roster_size=len(match.agents),
                house_fee=match.config.house_fee,
                seed=match.seed,
            ),
            start_to_close_timeout=timedelta(seconds=60),
            retry_policy=RetryPolicy(maximum_interval=timedelta(minutes=1)),
        )

        try:
            await workflow.wait_condition(lambda: self.should_close, timeout=SETTLED_RETENTION)
        except asyncio.TimeoutError:
            pass

        workflow.logger.info(f"Match workflow {match_id} completed")
        return self._summary()

    def _summary(self) -> MatchSummary:
        match = self.match
        return MatchSummary(
            match_id=self.match_id,
            status=match.status if match else MatchStatus.FORMING,
            winner=match.winner if match else None,
            payouts=self.payouts,
            seed=match.seed if match and match.status == MatchStatus.SETTLED else None,
            rounds=len(match.history) if match else 0,
        )

    @workflow.update
    async def join_match_update(self, request: JoinRequest) -> PublicState:
        """Add an agent to the roster and return the updated state."""
        try:
            engine.join_match(
                self.match, request.agent_id, request.wallet, now=workflow.time(), log=workflow.logger
            )
        except MatchError as error:
            raise _rejected(error)
        return engine.public_state(self.match, now=workflow.time())

    @join_match_update.validator
    def validate_join_match(self, request: JoinRequest) -> None:
        if not self.match:
            raise _rejected(NotForming(f"Match {self.match_id} is not ready"))
        try:
            engine.validate_join(self.match, request.agent_id)
        except MatchError as error:
            raise _rejected(error)

    @workflow.update
    async def submit_move_update(self, request: MoveRequest) -> Move:
        """Buffer a move for the current round."""
        try:
            return engine.submit_move(
                self.match, request.agent_id, request.action, request.x, request.y,
                now=workflow.time(),
            )
        except MatchError as error:
            raise _rejected(error)

    @submit_move_update.validator
    def validate_submit_move(self, request: MoveRequest) -> None:
        if not self.match:
            raise _rejected(NotActive(f"Match {self.match_id} is not ready"))
        try:
            engine.validate_move(self.match, request.agent_id, request.action, request.x, request.y)
        except MatchError as error:
            raise _rejected(error)

    @workflow.signal
    def close_match_signal(self) -> None:
        """Signal to close a forming or settled match. Active matches play on."""
        if self.match and self.match.status == MatchStatus.ACTIVE:
            workflow.logger.warning(f"Ignoring close for active match {self.match_id}")
            return
        self.should_close = True

    @workflow.query
    def get_public_state_query(self) -> PublicState:
        """Query to get the public match state."""
        if not self.match:
            # Minimal valid state while initializing
            return PublicState(
                id=self.match_id,
                status=MatchStatus.FORMING,
                stake_amount=0,
                pool=0,
                agents=[],
                current_round=0,
            )
        return engine.public_state(self.match, now=workflow.time())

    @workflow.query
    def get_board_query(self, agent_id: str) -> List[List[CellView]]:
        """Board as seen by one agent; empty until the match is active."""
        if not self.match or not self.match.board:
            return []
        return board_view(self.match.board, agent_id or None)

    @workflow.query
    def get_history_query(self) -> List[RoundResult]:
        return list(self.match.history) if self.match else []

    @workflow.query
    def get_verification_query(self) -> VerificationRecord:
        """Seed and board dimensions. Fails until the match has settled."""
        if not self.match:
            raise ApplicationError("Match not initialized", type="SeedWithheld")
        return engine.verification_record(self.match)

    @workflow.query
    def get_summary_query(self) -> MatchSummary:
        return self._summary()
