"""Tests for the Flask API with the Temporal client mocked out."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from temporalio.client import WorkflowUpdateFailedError
from temporalio.exceptions import ApplicationError
from temporalio.service import RPCError, RPCStatusCode

from minematch import server
from minematch.store import MatchStore
from minematch.types import (
    AgentView,
    CellView,
    MatchStatus,
    Move,
    MoveAction,
    PublicState,
    RevealedCell,
    RoundResult,
    VerificationRecord,
)
from minematch.workflows import MatchWorkflow


def make_state(match_id="match_1", status=MatchStatus.ACTIVE, stake=100, agents=5, seed=None):
    return PublicState(
        id=match_id,
        status=status,
        stake_amount=stake,
        pool=stake * agents,
        agents=[AgentView(id=f"a{i}", alive=True) for i in range(agents)],
        current_round=1,
        round_deadline=1010.0,
        time_remaining=4.0,
        winner="a0" if status == MatchStatus.SETTLED else None,
        seed=seed,
    )


@pytest.fixture
def temporal():
    """Mock Temporal client whose handles answer queries from ``responses``."""
    client = MagicMock()
    client.start_workflow = AsyncMock()
    handles = {}

    def get_handle(match_id):
        if match_id not in handles:
            handle = MagicMock()
            handle.responses = {}
            handle.query = AsyncMock(side_effect=lambda query, *args, h=handle: h.responses[query])
            handle.execute_update = AsyncMock()
            handles[match_id] = handle
        return handles[match_id]

    client.get_workflow_handle.side_effect = get_handle
    with patch.object(server, "temporal_client", client), patch.object(server, "store", MatchStore()):
        yield client


@pytest.fixture
def client(temporal):
    server.app.config["TESTING"] = True
    return server.app.test_client()


def rejected(code, message):
    return WorkflowUpdateFailedError(ApplicationError(message, type=code, non_retryable=True))


def not_found():
    return RPCError("workflow not found", RPCStatusCode.NOT_FOUND, b"")


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "OK"


def test_register_agent(client):
    resp = client.post("/api/agents/register", json={"wallet": "w1"})
    assert resp.status_code == 200
    agent_id = resp.get_json()["agentId"]
    assert agent_id.startswith("agent_")
    assert server.store.get_agent(agent_id).wallet == "w1"

    assert client.post("/api/agents/register", json={}).status_code == 400


def test_create_match(client, temporal):
    handle = temporal.get_workflow_handle("ignored")
    temporal.get_workflow_handle.side_effect = None
    temporal.get_workflow_handle.return_value = handle
    handle.responses[MatchWorkflow.get_public_state_query] = make_state(status=MatchStatus.FORMING, agents=0)

    resp = client.post("/api/matches", json={"stake": 100, "wallet": "creator"})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "forming"
    assert body["seed"] is None
    temporal.start_workflow.assert_awaited_once()
    args = temporal.start_workflow.await_args
    match_id, request = args.kwargs["args"]
    assert match_id.startswith("match_")
    assert request.stake_amount == 100
    assert request.creator == "creator"
    assert args.kwargs["task_queue"] == server.TASK_QUEUE
    assert server.store.match_ids() == [match_id]


def test_create_match_validation(client, temporal):
    assert client.post("/api/matches", json={"stake": 0, "wallet": "w"}).status_code == 400
    assert client.post("/api/matches", json={"stake": "10", "wallet": "w"}).status_code == 400
    assert client.post("/api/matches", json={"stake": 10}).status_code == 400
    temporal.start_workflow.assert_not_awaited()


def test_list_matches_filters_and_sorts(client, temporal):
    for match_id, stake, status in [("small", 10, MatchStatus.ACTIVE),
                                     ("big", 500, MatchStatus.ACTIVE),
                                     ("done", 1000, MatchStatus.SETTLED)]:
        server.store.add_match(match_id)
        handle = temporal.get_workflow_handle(match_id)
        handle.responses[MatchWorkflow.get_public_state_query] = make_state(match_id, status, stake)

    all_ids = [m["id"] for m in client.get("/api/matches").get_json()]
    assert all_ids == ["done", "big", "small"]

    active_ids = [m["id"] for m in client.get("/api/matches?status=active").get_json()]
    assert active_ids == ["big", "small"]


def test_list_matches_skips_unqueryable(client, temporal):
    for match_id in ["live", "gone", "flaky"]:
        server.store.add_match(match_id)
    temporal.get_workflow_handle("live").responses[MatchWorkflow.get_public_state_query] = make_state("live")
    temporal.get_workflow_handle("gone").query.side_effect = not_found()
    temporal.get_workflow_handle("flaky").query.side_effect = RuntimeError("deadline exceeded")

    resp = client.get("/api/matches")

    assert resp.status_code == 200
    assert [m["id"] for m in resp.get_json()] == ["live"]
    # Expired workflows leave the index, transient failures stay
    assert server.store.match_ids() == ["live", "flaky"]


def test_get_match_not_found(client, temporal):
    handle = temporal.get_workflow_handle("missing")
    handle.query.side_effect = RuntimeError("workflow not found")
    with patch.object(server.asyncio, "sleep", AsyncMock()):
        resp = client.get("/api/matches/missing")
    assert resp.status_code == 404


def test_match_state_includes_board(client, temporal):
    handle = temporal.get_workflow_handle("match_1")
    handle.responses[MatchWorkflow.get_public_state_query] = make_state()
    handle.responses[MatchWorkflow.get_board_query] = [[
        CellView(x=0, y=0, revealed=False, flagged=True),
        CellView(x=1, y=0, revealed=True, has_bomb=False, adjacent_bombs=2),
    ]]

    body = client.get("/api/matches/match_1/state?agentId=a0").get_json()

    assert body["pool"] == 500
    assert body["board"][0][0] == {"x": 0, "y": 0, "revealed": False, "flagged": True}
    assert body["board"][0][1]["adjacentBombs"] == 2
    handle.query.assert_any_await(MatchWorkflow.get_board_query, "a0")


def test_join_match(client, temporal):
    handle = temporal.get_workflow_handle("match_1")
    handle.execute_update.return_value = make_state(status=MatchStatus.FORMING, agents=1)

    resp = client.post("/api/matches/match_1/join", json={"agentId": "a0", "wallet": "w0"})

    assert resp.status_code == 200
    update, join_request = handle.execute_update.await_args.args
    assert update == MatchWorkflow.join_match_update
    assert (join_request.agent_id, join_request.wallet) == ("a0", "w0")


def test_join_uses_registered_wallet(client, temporal):
    server.store.register_agent("agent_x", "registered-wallet")
    handle = temporal.get_workflow_handle("match_1")
    handle.execute_update.return_value = make_state(status=MatchStatus.FORMING, agents=1)

    resp = client.post("/api/matches/match_1/join", json={"agentId": "agent_x"})

    assert resp.status_code == 200
    assert handle.execute_update.await_args.args[1].wallet == "registered-wallet"
    assert client.post("/api/matches/match_1/join", json={"agentId": "nobody"}).status_code == 400


def test_join_rejected(client, temporal):
    handle = temporal.get_workflow_handle("match_1")
    handle.execute_update.side_effect = rejected("AlreadyFull", "Match match_1 is full")

    resp = client.post("/api/matches/match_1/join", json={"agentId": "a9", "wallet": "w9"})

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Match match_1 is full", "code": "AlreadyFull"}


def test_submit_move(client, temporal):
    handle = temporal.get_workflow_handle("match_1")
    handle.execute_update.return_value = Move(agent_id="a0", action=MoveAction.REVEAL, x=3, y=4, timestamp=1001.0)

    resp = client.post("/api/matches/match_1/move", json={"agentId": "a0", "action": "reveal", "x": 3, "y": 4})

    assert resp.status_code == 200
    assert resp.get_json()["move"] == {
        "agentId": "a0", "action": "reveal", "x": 3, "y": 4, "timestamp": 1001.0, "fallback": False,
    }
    update, move_request = handle.execute_update.await_args.args
    assert update == MatchWorkflow.submit_move_update
    assert (move_request.action, move_request.x, move_request.y) == ("reveal", 3, 4)


def test_submit_move_invalid_request(client, temporal):
    for payload in [
        {"agentId": "a0", "action": "chord", "x": 1, "y": 1},
        {"agentId": "a0", "action": "reveal", "x": "1", "y": 1},
        {"action": "reveal", "x": 1, "y": 1},
        {"agentId": "a0", "action": "flag", "x": True, "y": False},
    ]:
        resp = client.post("/api/matches/match_1/move", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid move request"
    temporal.get_workflow_handle("match_1").execute_update.assert_not_awaited()


def test_join_unknown_match(client, temporal):
    temporal.get_workflow_handle("nope").execute_update.side_effect = not_found()

    resp = client.post("/api/matches/nope/join", json={"agentId": "a0", "wallet": "w0"})

    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Match not found"}


def test_move_unknown_match(client, temporal):
    temporal.get_workflow_handle("nope").execute_update.side_effect = not_found()

    resp = client.post("/api/matches/nope/move", json={"agentId": "a0", "action": "reveal", "x": 1, "y": 1})

    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Match not found"}


def test_submit_move_duplicate(client, temporal):
    handle = temporal.get_workflow_handle("match_1")
    handle.execute_update.side_effect = rejected("DuplicateSubmission", "Agent a0 already submitted a move for round 1")

    resp = client.post("/api/matches/match_1/move", json={"agentId": "a0", "action": "flag", "x": 1, "y": 1})

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "DuplicateSubmission"


def test_seed_withheld_while_active(client, temporal):
    handle = temporal.get_workflow_handle("match_1")
    handle.responses[MatchWorkflow.get_public_state_query] = make_state()

    resp = client.get("/api/matches/match_1/seed")

    assert resp.status_code == 403
    assert resp.get_json()["code"] == "SeedWithheld"


def test_seed_after_settlement(client, temporal):
    handle = temporal.get_workflow_handle("match_1")
    handle.responses[MatchWorkflow.get_public_state_query] = make_state(status=MatchStatus.SETTLED, seed="abc")
    handle.responses[MatchWorkflow.get_verification_query] = VerificationRecord(seed="abc", grid_size=10, bomb_count=25)

    resp = client.get("/api/matches/match_1/seed")

    assert resp.status_code == 200
    assert resp.get_json() == {"seed": "abc", "gridSize": 10, "bombCount": 25}


def test_history_hides_other_agents_flags(client, temporal):
    handle = temporal.get_workflow_handle("match_1")
    handle.responses[MatchWorkflow.get_history_query] = [RoundResult(
        round=1,
        moves=[
            Move(agent_id="a0", action=MoveAction.FLAG, x=0, y=0, timestamp=1.0),
            Move(agent_id="a1", action=MoveAction.FLAG, x=2, y=2, timestamp=1.0),
            Move(agent_id="a2", action=MoveAction.REVEAL, x=5, y=5, timestamp=1.0, fallback=True),
        ],
        eliminations=[],
        revealed_cells=[RevealedCell(x=5, y=5, has_bomb=False, adjacent_bombs=1)],
    )]

    rounds = client.get("/api/matches/match_1/history?agentId=a0").get_json()

    assert [m["agentId"] for m in rounds[0]["moves"]] == ["a0", "a2"]
    assert rounds[0]["revealedCells"] == [{"x": 5, "y": 5, "hasBomb": False, "adjacentBombs": 1}]


def test_verify_endpoint(client):
    resp = client.get("/api/verify?seed=abc&gridSize=4&bombCount=3")
    assert resp.status_code == 200
    assert resp.get_json()["bombs"] == [[2, 0], [2, 2], [2, 3]]

    assert client.get("/api/verify?seed=abc&gridSize=4&bombCount=16").status_code == 400
    assert client.get("/api/verify").status_code == 400
