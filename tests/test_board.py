"""Tests for board generation, reveal cascade and flags."""
import pytest

from minematch.board import (
    board_view,
    bomb_positions,
    count_adjacent_bombs,
    generate_board,
    is_board_cleared,
    neighbors,
    render_ascii,
    reveal_single,
    toggle_flag,
    unrevealed_cells,
    verify_board,
)
from minematch.errors import BoardConfigError
from minematch.types import BOMB_SENTINEL, Board, Cell


# Bomb set the JavaScript reference produces for this seed on 10x10 / 25
REFERENCE_BOMBS = {
    (0, 0), (0, 4), (0, 8), (2, 0), (2, 2), (2, 6), (2, 7), (2, 8), (3, 4),
    (4, 4), (4, 5), (5, 0), (5, 1), (5, 2), (6, 1), (6, 2), (6, 7), (6, 9),
    (7, 2), (7, 6), (8, 0), (9, 0), (9, 6), (9, 7), (9, 9),
}


def make_board(grid_size, bombs):
    """Hand-built board with the given bomb set."""
    cells = []
    for y in range(grid_size):
        row = []
        for x in range(grid_size):
            has_bomb = (x, y) in bombs
            row.append(Cell(
                x=x, y=y, has_bomb=has_bomb,
                adjacent_bombs=BOMB_SENTINEL if has_bomb else count_adjacent_bombs(x, y, bombs, grid_size),
            ))
        cells.append(row)
    return Board(cells=cells, grid_size=grid_size, bomb_count=len(bombs))


def test_bomb_positions_match_reference():
    assert bomb_positions("test-seed-12345", 10, 25) == REFERENCE_BOMBS
    assert bomb_positions("abc", 4, 3) == {(2, 2), (2, 3), (2, 0)}


def test_generate_board_is_deterministic():
    for seed in ["alpha", "beta", 12345, b"\x01\x02\x03\x04"]:
        first = generate_board(seed, 10, 25)
        second = generate_board(seed, 10, 25)
        assert first == second


def test_exact_bomb_count():
    for seed in range(20):
        board = generate_board(f"seed-{seed}", 10, 25)
        assert sum(c.has_bomb for row in board.cells for c in row) == 25


def test_adjacency_counts():
    board = generate_board("adjacency", 10, 25)
    for row in board.cells:
        for cell in row:
            if cell.has_bomb:
                assert cell.adjacent_bombs == BOMB_SENTINEL
                continue
            expected = sum(board.cell(nx, ny).has_bomb for nx, ny in neighbors(cell.x, cell.y, 10))
            assert cell.adjacent_bombs == expected


def test_bad_config_rejected():
    with pytest.raises(BoardConfigError):
        generate_board("x", 10, 100)
    with pytest.raises(BoardConfigError):
        generate_board("x", 10, 101)
    with pytest.raises(BoardConfigError):
        generate_board("x", 0, 0)
    with pytest.raises(ValueError):
        generate_board("x", 3, -1)


def test_verify_board_matches_generation():
    board = generate_board("verify-me", 10, 25)
    bombs = {(c.x, c.y) for row in board.cells for c in row if c.has_bomb}
    assert verify_board("verify-me", 10, 25) == bombs


def test_neighbors_clip_at_edges():
    assert len(neighbors(0, 0, 10)) == 3
    assert len(neighbors(0, 5, 10)) == 5
    assert len(neighbors(5, 5, 10)) == 8
    assert neighbors(1, 1, 3)[0] == (0, 0)


def test_reveal_nonzero_cell_reveals_only_itself():
    board = make_board(3, {(2, 2)})
    revealed = reveal_single(board, 1, 1)
    assert [(c.x, c.y) for c in revealed] == [(1, 1)]


def test_reveal_cascade_stops_at_numbers():
    # Wall of bombs down column 2: zeros on x=0, numbers on x=1
    board = make_board(5, {(2, y) for y in range(5)})
    revealed = reveal_single(board, 0, 0)
    assert {(c.x, c.y) for c in revealed} == {(x, y) for x in (0, 1) for y in range(5)}
    assert all(not board.cell(x, y).revealed for x in (3, 4) for y in range(5))
    assert len(revealed) == len({(c.x, c.y) for c in revealed})


def test_reveal_cascade_never_reveals_bombs():
    board = make_board(3, {(2, 2)})
    revealed = reveal_single(board, 0, 0)
    assert len(revealed) == 8
    assert not board.cell(2, 2).revealed
    assert is_board_cleared(board)


def test_reveal_order_is_reproducible():
    first = generate_board("order", 10, 10)
    second = generate_board("order", 10, 10)
    start = next(c for row in first.cells for c in row if not c.has_bomb and c.adjacent_bombs == 0)
    a = [(c.x, c.y) for c in reveal_single(first, start.x, start.y)]
    b = [(c.x, c.y) for c in reveal_single(second, start.x, start.y)]
    assert a == b


def test_reveal_bomb_and_already_revealed():
    board = make_board(3, {(0, 0)})
    assert reveal_single(board, 0, 0) == [board.cell(0, 0)]
    assert board.cell(0, 0).revealed
    assert reveal_single(board, 0, 0) == []


def test_toggle_flag():
    board = make_board(3, {(0, 0)})
    assert toggle_flag(board, 0, 0, "a1") is True
    assert toggle_flag(board, 0, 0, "a2") is True
    assert board.cell(0, 0).flagged_by == ["a1", "a2"]
    assert toggle_flag(board, 0, 0, "a1") is False
    assert board.cell(0, 0).flagged_by == ["a2"]


def test_toggle_flag_on_revealed_cell():
    board = make_board(3, {(0, 0)})
    reveal_single(board, 2, 2)
    assert toggle_flag(board, 2, 2, "a1") is False
    assert board.cell(2, 2).flagged_by == []


def test_board_view_hides_other_agents_flags():
    board = make_board(3, {(0, 0)})
    toggle_flag(board, 0, 0, "a1")
    reveal_single(board, 1, 1)

    mine = board_view(board, "a1")
    theirs = board_view(board, "a2")
    assert mine[0][0].flagged is True
    assert theirs[0][0].flagged is False
    assert mine[0][0].has_bomb is None
    assert mine[1][1].revealed and mine[1][1].adjacent_bombs == 1


def test_unrevealed_cells_and_render():
    board = make_board(2, {(1, 1)})
    assert len(unrevealed_cells(board)) == 4
    assert render_ascii(board) == "1 1\n1 X"
