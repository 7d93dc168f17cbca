"""Board generation, reveal cascade, and per-agent flags."""
from typing import List, Optional, Set, Tuple

from minematch.errors import BoardConfigError
from minematch.rng import SeededRandom, SeedLike
from minematch.types import BOMB_SENTINEL, Board, Cell, CellView, RevealedCell

# Fixed neighbour order: dx outer, dy inner. Reveal order depends on it.
NEIGHBOR_OFFSETS = [(dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)]


def check_board_config(grid_size: int, bomb_count: int) -> None:
    if grid_size < 1:
        raise BoardConfigError(f"grid_size must be positive, got {grid_size}")
    if bomb_count < 0 or bomb_count >= grid_size * grid_size:
        raise BoardConfigError(
            f"bomb_count must be in [0, {grid_size * grid_size}), got {bomb_count}"
        )


def neighbors(x: int, y: int, grid_size: int) -> List[Tuple[int, int]]:
    """In-bounds neighbours of (x, y) in fixed order."""
    result = []
    for dx, dy in NEIGHBOR_OFFSETS:
        nx, ny = x + dx, y + dy
        if 0 <= nx < grid_size and 0 <= ny < grid_size:
            result.append((nx, ny))
    return result


def bomb_positions(seed: SeedLike, grid_size: int, bomb_count: int) -> Set[Tuple[int, int]]:
    """Derive the bomb set for a seed.

    A Fisher-Yates shuffle over the flat index space [0, grid_size**2) driven
    by Mulberry32; the first ``bomb_count`` indices are bombs. Index k maps to
    x = k % grid_size, y = k // grid_size.
    """
    check_board_config(grid_size, bomb_count)
    rng = SeededRandom(seed)
    indices = list(range(grid_size * grid_size))
    rng.shuffle(indices)
    return {(idx % grid_size, idx // grid_size) for idx in indices[:bomb_count]}


def count_adjacent_bombs(x: int, y: int, bombs: Set[Tuple[int, int]], grid_size: int) -> int:
    """Count the number of bombs in neighbouring cells."""
    return sum(1 for pos in neighbors(x, y, grid_size) if pos in bombs)


def generate_board(seed: SeedLike, grid_size: int, bomb_count: int) -> Board:
    """Build a fresh board. Same inputs always give the same board."""
    bombs = bomb_positions(seed, grid_size, bomb_count)

    cells: List[List[Cell]] = []
    for y in range(grid_size):
        row = []
        for x in range(grid_size):
            has_bomb = (x, y) in bombs
            row.append(Cell(
                x=x,
                y=y,
                has_bomb=has_bomb,
                adjacent_bombs=BOMB_SENTINEL if has_bomb else count_adjacent_bombs(x, y, bombs, grid_size),
            ))
        cells.append(row)

    return Board(cells=cells, grid_size=grid_size, bomb_count=bomb_count)


def verify_board(seed: SeedLike, grid_size: int, bomb_count: int) -> Set[Tuple[int, int]]:
    """Reproduce the bomb set of a settled match from its revealed seed."""
    return bomb_positions(seed, grid_size, bomb_count)


def reveal_single(board: Board, x: int, y: int) -> List[Cell]:
    """Reveal a cell, cascading through zero-adjacency regions.

    Returns the newly revealed cells in discovery order. A bomb target is
    revealed alone; elimination is the caller's business.
    """
    target = board.cell(x, y)
    if target.revealed:
        return []
    if target.has_bomb:
        target.revealed = True
        return [target]

    revealed: List[Cell] = []
    stack = [(x, y)]
    visited = set()

    while stack:
        cx, cy = stack.pop()
        if (cx, cy) in visited:
            continue
        visited.add((cx, cy))

        cell = board.cell(cx, cy)
        if cell.revealed:
            continue

        cell.revealed = True
        revealed.append(cell)

        if not cell.has_bomb and cell.adjacent_bombs == 0:
            for pos in neighbors(cx, cy, board.grid_size):
                if pos not in visited and not board.cell(*pos).revealed:
                    stack.append(pos)

    return revealed


def toggle_flag(board: Board, x: int, y: int, agent_id: str) -> bool:
    """Toggle an agent's private flag. Returns the resulting flag state.

    Revealed cells cannot be flagged; the call returns False and changes
    nothing.
    """
    cell = board.cell(x, y)
    if cell.revealed:
        return False

    if agent_id in cell.flagged_by:
        cell.flagged_by.remove(agent_id)
        return False
    cell.flagged_by.append(agent_id)
    return True


def unrevealed_cells(board: Board) -> List[Cell]:
    """Hidden cells in row-major order."""
    return [cell for row in board.cells for cell in row if not cell.revealed]


def count_unrevealed_safe(board: Board) -> int:
    return sum(1 for cell in unrevealed_cells(board) if not cell.has_bomb)


def is_board_cleared(board: Board) -> bool:
    """True once every non-bomb cell is revealed."""
    return count_unrevealed_safe(board) == 0


def snapshot(cell: Cell) -> RevealedCell:
    return RevealedCell(x=cell.x, y=cell.y, has_bomb=cell.has_bomb, adjacent_bombs=cell.adjacent_bombs)


def board_view(board: Board, agent_id: Optional[str] = None) -> List[List[CellView]]:
    """Board as one agent may see it.

    Hidden cells carry nothing but the viewer's own flag; revealed cells
    carry bomb and adjacency data.
    """
    rows = []
    for row in board.cells:
        view_row = []
        for cell in row:
            if cell.revealed:
                view_row.append(CellView(
                    x=cell.x,
                    y=cell.y,
                    revealed=True,
                    has_bomb=cell.has_bomb,
                    adjacent_bombs=cell.adjacent_bombs,
                ))
            else:
                view_row.append(CellView(
                    x=cell.x,
                    y=cell.y,
                    revealed=False,
                    flagged=agent_id is not None and agent_id in cell.flagged_by,
                ))
        rows.append(view_row)
    return rows


def render_ascii(board: Board) -> str:
    """Render bombs as X and safe cells as their adjacency count."""
    lines = []
    for row in board.cells:
        lines.append(" ".join("X" if c.has_bomb else str(c.adjacent_bombs) for c in row))
    return "\n".join(lines)
