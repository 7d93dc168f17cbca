"""Match lifecycle and round resolution.

A match moves forming -> active -> settled and never goes back. Every
function here is an in-memory transformation on a Match the caller owns
exclusively; timers and I/O belong to the driver (see workflows.py).

All functions accept ``now`` in epoch seconds so a deterministic driver can
supply its own clock. When omitted, wall-clock time is used.
"""
import hashlib
import logging
import time
from typing import List, Optional

from minematch.board import (
    generate_board,
    is_board_cleared,
    reveal_single,
    snapshot,
    toggle_flag,
    unrevealed_cells,
)
from minematch.errors import (
    AgentEliminated,
    AlreadyFull,
    AlreadyJoined,
    CellAlreadyRevealed,
    DuplicateSubmission,
    InvalidAction,
    NotActive,
    NotEnoughAgents,
    NotForming,
    OutOfBounds,
    UnknownAgent,
)
from minematch.rng import SeededRandom
from minematch.types import (
    Agent,
    AgentView,
    Board,
    Cell,
    Match,
    MatchConfig,
    MatchStatus,
    Move,
    MoveAction,
    PublicState,
    RoundResult,
    VerificationRecord,
)

logger = logging.getLogger(__name__)


def _clock(now: Optional[float]) -> float:
    return time.time() if now is None else now


def create_match(match_id: str, stake_amount: int, creator: str = "",
                 config: Optional[MatchConfig] = None, now: Optional[float] = None, log=None) -> Match:
    """Create a new match in the forming state."""
    log = log or logger
    config = config or MatchConfig()
    config.validate()
    match = Match(
        id=match_id,
        stake_amount=stake_amount,
        config=config,
        creator=creator,
        created_at=_clock(now),
    )
    log.info(f"Match {match_id} created (stake {stake_amount}, capacity {config.capacity})")
    return match


def validate_join(match: Match, agent_id: str) -> None:
    if match.status != MatchStatus.FORMING:
        raise NotForming(f"Match {match.id} is {match.status.value}, not forming")
    if len(match.agents) >= match.config.capacity:
        raise AlreadyFull(f"Match {match.id} is full")
    if match.agent(agent_id) is not None:
        raise AlreadyJoined(f"Agent {agent_id} already joined match {match.id}")


def join_match(match: Match, agent_id: str, wallet: str = "", now: Optional[float] = None,
               log=None) -> Agent:
    """Add an agent to the roster. Join order is roster order."""
    log = log or logger
    validate_join(match, agent_id)
    agent = Agent(id=agent_id, wallet=wallet, alive=True, joined_at=_clock(now))
    match.agents.append(agent)
    log.info(f"Agent {agent_id} joined match {match.id} ({len(match.agents)}/{match.config.capacity})")
    return agent


def derive_seed(seed_material: str, match_id: str) -> str:
    """Mix external entropy with the match id into the board seed."""
    return hashlib.sha256((seed_material + match_id).encode("utf-8")).hexdigest()


def activate_match(match: Match, seed_material: str, now: Optional[float] = None, log=None) -> Match:
    """Start a full match: derive the seed, build the board, open round 1."""
    log = log or logger
    if match.status != MatchStatus.FORMING:
        raise NotForming(f"Match {match.id} is {match.status.value}, not forming")
    if len(match.agents) < match.config.capacity:
        raise NotEnoughAgents(
            f"Match {match.id} needs {match.config.capacity} agents, has {len(match.agents)}"
        )

    now = _clock(now)
    seed = derive_seed(seed_material, match.id)
    match.board = generate_board(seed, match.config.grid_size, match.config.bomb_count)
    match._seed = seed
    match.status = MatchStatus.ACTIVE
    match.current_round = 1
    match.round_deadline = now + match.config.round_seconds
    match.started_at = now
    log.info(f"Match {match.id} active, round 1 ends at {match.round_deadline}")
    return match


def _parse_action(action) -> MoveAction:
    try:
        return MoveAction(action)
    except ValueError:
        raise InvalidAction(f"Unknown action {action!r}") from None


def _is_coordinate(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_move(match: Match, agent_id: str, action, x: int, y: int) -> MoveAction:
    """Check a submission without changing the match. Returns the parsed action."""
    if match.status != MatchStatus.ACTIVE or match.board is None:
        raise NotActive(f"Match {match.id} is not active")

    agent = match.agent(agent_id)
    if agent is None:
        raise UnknownAgent(f"Agent {agent_id} is not in match {match.id}")
    if not agent.alive:
        raise AgentEliminated(f"Agent {agent_id} has been eliminated")
    if agent_id in match.pending_moves:
        raise DuplicateSubmission(f"Agent {agent_id} already submitted a move for round {match.current_round}")

    if not _is_coordinate(x) or not _is_coordinate(y) or not match.board.in_bounds(x, y):
        raise OutOfBounds(f"({x}, {y}) is outside the {match.board.grid_size}x{match.board.grid_size} grid")
    if match.board.cell(x, y).revealed:
        raise CellAlreadyRevealed(f"Cell ({x}, {y}) is already revealed")

    return _parse_action(action)


def submit_move(match: Match, agent_id: str, action, x: int, y: int,
                now: Optional[float] = None) -> Move:
    """Buffer an agent's move for the current round.

    The first submission per agent per round wins; later ones are rejected.
    """
    parsed = validate_move(match, agent_id, action, x, y)
    move = Move(agent_id=agent_id, action=parsed, x=x, y=y, timestamp=_clock(now))
    match.pending_moves[agent_id] = move
    return move


def _fallback_rng(match: Match) -> SeededRandom:
    # Keyed by round so a replay with the same seed picks the same cells.
    return SeededRandom(f"{match._seed}:fallback:{match.current_round}")


def _fallback_move(board: Board, agent_id: str, rng: SeededRandom, now: float) -> Optional[Move]:
    hidden = unrevealed_cells(board)
    if not hidden:
        return None
    safe = [cell for cell in hidden if not cell.has_bomb]
    target = rng.choice(safe or hidden)
    return Move(agent_id=agent_id, action=MoveAction.REVEAL, x=target.x, y=target.y,
                timestamp=now, fallback=True)


def collect_moves(match: Match, now: float, log=None) -> List[Move]:
    """Submitted moves plus fallbacks for silent agents, in roster order."""
    log = log or logger
    moves = []
    rng = None
    for agent in match.alive_agents():
        move = match.pending_moves.get(agent.id)
        if move is None:
            if rng is None:
                rng = _fallback_rng(match)
            move = _fallback_move(match.board, agent.id, rng, now)
            if move is not None:
                log.debug(f"Match {match.id} round {match.current_round}: fallback move for {agent.id}")
        if move is not None:
            moves.append(move)
    return moves


def _settle(match: Match, winner: str, now: float, log) -> None:
    match.winner = winner
    match.status = MatchStatus.SETTLED
    match.finished_at = now
    log.info(f"Match {match.id} settled in round {match.current_round}, winner {winner}")


def resolve_round(match: Match, now: Optional[float] = None, log=None) -> Optional[RoundResult]:
    """Resolve the current round as one batch.

    Returns None without touching the match unless it is active. Pass
    ``log`` to route log lines elsewhere, e.g. a replay-aware workflow logger.
    """
    log = log or logger
    if match.status != MatchStatus.ACTIVE or match.board is None:
        log.debug(f"Ignoring round resolution for match {match.id} in status {match.status.value}")
        return None

    now = _clock(now)
    board = match.board
    moves = collect_moves(match, now, log)

    eliminations: List[str] = []
    revealed: List[Cell] = []

    # Reveals in roster order, never arrival order
    for move in moves:
        if move.action != MoveAction.REVEAL:
            continue
        cell = board.cell(move.x, move.y)
        if cell.revealed:
            continue
        if cell.has_bomb:
            match.agent(move.agent_id).alive = False
            eliminations.append(move.agent_id)
        revealed.extend(reveal_single(board, move.x, move.y))

    # Flags after all reveals
    for move in moves:
        if move.action == MoveAction.REVEAL:
            continue
        cell = board.cell(move.x, move.y)
        if cell.revealed:
            continue
        flagged = move.agent_id in cell.flagged_by
        if (move.action == MoveAction.FLAG) != flagged:
            toggle_flag(board, move.x, move.y, move.agent_id)

    seen = set()
    revealed_cells = []
    for cell in revealed:
        if (cell.x, cell.y) not in seen:
            seen.add((cell.x, cell.y))
            revealed_cells.append(snapshot(cell))

    result = RoundResult(
        round=match.current_round,
        moves=moves,
        eliminations=eliminations,
        revealed_cells=revealed_cells,
    )
    match.history.append(result)

    alive = match.alive_agents()
    winner = None
    if not alive:
        # Last to die wins
        winner = eliminations[-1] if eliminations else match.agents[0].id
    elif len(alive) == 1:
        winner = alive[0].id
    elif is_board_cleared(board):
        last_reveal = next((m for m in reversed(moves) if m.action == MoveAction.REVEAL), None)
        winner = last_reveal.agent_id if last_reveal else alive[0].id

    if winner is not None:
        _settle(match, winner, now, log)
    else:
        match.current_round += 1
        match.round_deadline = now + match.config.round_seconds
        log.debug(f"Match {match.id} advancing to round {match.current_round}")

    match.pending_moves.clear()
    return result


def public_state(match: Match, now: Optional[float] = None) -> PublicState:
    """Snapshot safe to show anyone. The seed appears only once settled."""
    time_remaining = None
    if match.status == MatchStatus.ACTIVE and match.round_deadline is not None:
        time_remaining = max(0.0, match.round_deadline - _clock(now))

    return PublicState(
        id=match.id,
        status=match.status,
        stake_amount=match.stake_amount,
        pool=match.stake_amount * len(match.agents),
        agents=[AgentView(id=a.id, alive=a.alive) for a in match.agents],
        current_round=match.current_round,
        round_deadline=match.round_deadline,
        time_remaining=time_remaining,
        winner=match.winner,
        seed=match.seed if match.status == MatchStatus.SETTLED else None,
    )


def verification_record(match: Match) -> VerificationRecord:
    """Seed plus board dimensions. Raises SeedWithheld before settlement."""
    return VerificationRecord(
        seed=match.seed,
        grid_size=match.config.grid_size,
        bomb_count=match.config.bomb_count,
    )
