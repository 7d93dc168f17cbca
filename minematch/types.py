"""Type definitions for minematch."""
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum

from minematch.errors import BoardConfigError, SeedWithheld


BOMB_SENTINEL = -1


@dataclass
class Cell:
    """Represents a single cell on the board."""
    x: int
    y: int
    has_bomb: bool
    adjacent_bombs: int
    revealed: bool = False
    flagged_by: List[str] = field(default_factory=list)  # private per agent


@dataclass
class Board:
    """Square grid of cells, indexed cells[y][x]."""
    cells: List[List[Cell]]
    grid_size: int
    bomb_count: int

    def cell(self, x: int, y: int) -> Cell:
        return self.cells[y][x]

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.grid_size and 0 <= y < self.grid_size


class MatchStatus(str, Enum):
    """Lifecycle states of a match."""
    FORMING = 'forming'
    ACTIVE = 'active'
    SETTLED = 'settled'


class MoveAction(str, Enum):
    """Actions an agent may submit for a round."""
    REVEAL = 'reveal'
    FLAG = 'flag'
    UNFLAG = 'unflag'


@dataclass
class Agent:
    """A roster slot in a match."""
    id: str
    wallet: str
    alive: bool = True
    joined_at: float = 0.0


@dataclass(frozen=True)
class Move:
    """A move for one round, either submitted or synthesized."""
    agent_id: str
    action: MoveAction
    x: int
    y: int
    timestamp: float
    fallback: bool = False


@dataclass(frozen=True)
class RevealedCell:
    """Snapshot of a cell revealed during a round."""
    x: int
    y: int
    has_bomb: bool
    adjacent_bombs: int


@dataclass(frozen=True)
class RoundResult:
    """Outcome of a resolved round."""
    round: int
    moves: List[Move]
    eliminations: List[str]
    revealed_cells: List[RevealedCell]


@dataclass
class MatchConfig:
    """Match-wide constants."""
    grid_size: int = 10
    bomb_count: int = 25
    capacity: int = 5
    round_seconds: float = 10.0
    house_fee: float = 0.05

    def validate(self) -> None:
        if self.grid_size < 1:
            raise BoardConfigError(f"grid_size must be positive, got {self.grid_size}")
        if self.bomb_count < 0 or self.bomb_count >= self.grid_size * self.grid_size:
            raise BoardConfigError(
                f"bomb_count must be in [0, {self.grid_size * self.grid_size}), got {self.bomb_count}"
            )
        if self.capacity < 2:
            raise ValueError(f"capacity must be at least 2, got {self.capacity}")
        if self.round_seconds <= 0:
            raise ValueError(f"round_seconds must be positive, got {self.round_seconds}")
        if not 0 <= self.house_fee < 1:
            raise ValueError(f"house_fee must be in [0, 1), got {self.house_fee}")

    @classmethod
    def from_env(cls) -> "MatchConfig":
        """Build a config from MINEMATCH_* environment variables."""
        config = cls(
            grid_size=int(os.getenv("MINEMATCH_GRID_SIZE", cls.grid_size)),
            bomb_count=int(os.getenv("MINEMATCH_BOMB_COUNT", cls.bomb_count)),
            capacity=int(os.getenv("MINEMATCH_CAPACITY", cls.capacity)),
            round_seconds=float(os.getenv("MINEMATCH_ROUND_SECONDS", cls.round_seconds)),
            house_fee=float(os.getenv("MINEMATCH_HOUSE_FEE", cls.house_fee)),
        )
        config.validate()
        return config


@dataclass
class Match:
    """Full in-memory state of one match. Owned by a single driver."""
    id: str
    stake_amount: int
    config: MatchConfig
    creator: str = ""
    status: MatchStatus = MatchStatus.FORMING
    agents: List[Agent] = field(default_factory=list)
    board: Optional[Board] = None
    current_round: int = 0
    round_deadline: Optional[float] = None
    pending_moves: Dict[str, Move] = field(default_factory=dict)
    history: List[RoundResult] = field(default_factory=list)
    winner: Optional[str] = None
    created_at: float = 0.0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    _seed: Optional[str] = field(default=None, init=False, repr=False)

    @property
    def seed(self) -> str:
        """The board seed, readable only after settlement."""
        if self.status != MatchStatus.SETTLED or self._seed is None:
            raise SeedWithheld(f"Seed for match {self.id} is withheld until settlement")
        return self._seed

    def agent(self, agent_id: str) -> Optional[Agent]:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def alive_agents(self) -> List[Agent]:
        return [a for a in self.agents if a.alive]


@dataclass
class Payouts:
    """Split of the prize pool."""
    pool: int
    winner_amount: int
    house_amount: int


@dataclass
class AgentView:
    id: str
    alive: bool


@dataclass
class PublicState:
    """Externally visible match state."""
    id: str
    status: MatchStatus
    stake_amount: int
    pool: int
    agents: List[AgentView]
    current_round: int
    round_deadline: Optional[float] = None
    time_remaining: Optional[float] = None
    winner: Optional[str] = None
    seed: Optional[str] = None


@dataclass
class CellView:
    """A cell as shown to one agent."""
    x: int
    y: int
    revealed: bool
    flagged: bool = False
    has_bomb: Optional[bool] = None
    adjacent_bombs: Optional[int] = None


@dataclass
class VerificationRecord:
    """Everything a verifier needs to rebuild the board."""
    seed: str
    grid_size: int
    bomb_count: int


@dataclass
class CreateMatchRequest:
    """Request to create a new match."""
    stake_amount: int
    creator: str = ""
    config: MatchConfig = field(default_factory=MatchConfig)
    blockhash: Optional[str] = None


@dataclass
class JoinRequest:
    agent_id: str
    wallet: str = ""


@dataclass
class MoveRequest:
    """Request to submit a move for the current round."""
    agent_id: str
    action: str  # 'reveal', 'flag', 'unflag'
    x: int
    y: int


@dataclass
class SeedRequest:
    match_id: str
    blockhash: Optional[str] = None


@dataclass
class SettlementRequest:
    match_id: str
    winner: str
    stake_amount: int
    roster_size: int
    house_fee: float
    seed: str


@dataclass
class MatchSummary:
    """Final result returned by a completed match workflow."""
    match_id: str
    status: MatchStatus
    winner: Optional[str] = None
    payouts: Optional[Payouts] = None
    seed: Optional[str] = None
    rounds: int = 0
