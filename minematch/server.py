"""Flask server for minematch."""
import asyncio
import os
import logging
from datetime import datetime
from flask import Flask, request, jsonify
from flask_cors import CORS
from temporalio.client import Client
from temporalio.exceptions import ApplicationError
from temporalio.service import RPCError, RPCStatusCode
import uuid

from minematch.workflows import MatchWorkflow
from minematch.board import verify_board
from minematch.client_provider import TASK_QUEUE, get_temporal_client
from minematch.errors import BoardConfigError, STATUS_BY_CODE
from minematch.store import MatchStore
from minematch.types import (
    CreateMatchRequest,
    JoinRequest,
    MatchConfig,
    MatchStatus,
    MoveAction,
    MoveRequest,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

# Global client reference
temporal_client: Client | None = None
store = MatchStore()

MOVE_ACTIONS = [action.value for action in MoveAction]


def serialize_public_state(state):
    """Convert a PublicState to the JSON shape clients expect."""
    return {
        'id': state.id,
        'status': MatchStatus(state.status).value,
        'stakeAmount': state.stake_amount,
        'pool': state.pool,
        'agents': [{'id': a.id, 'alive': a.alive} for a in state.agents],
        'currentRound': state.current_round,
        'roundDeadline': state.round_deadline,
        'timeRemaining': state.time_remaining,
        'winner': state.winner,
        'seed': state.seed,
    }


def serialize_board(rows):
    cells = []
    for row in rows:
        row_cells = []
        for cell in row:
            if cell.revealed:
                row_cells.append({
                    'x': cell.x,
                    'y': cell.y,
                    'revealed': True,
                    'hasBomb': cell.has_bomb,
                    'adjacentBombs': cell.adjacent_bombs,
                })
            else:
                row_cells.append({'x': cell.x, 'y': cell.y, 'revealed': False, 'flagged': cell.flagged})
        cells.append(row_cells)
    return cells


def serialize_move(move):
    return {
        'agentId': move.agent_id,
        'action': MoveAction(move.action).value,
        'x': move.x,
        'y': move.y,
        'timestamp': move.timestamp,
        'fallback': move.fallback,
    }


def serialize_round(result, viewer=None):
    """Round result as JSON. Flag moves are shown only to their own agent."""
    moves = [
        m for m in result.moves
        if MoveAction(m.action) == MoveAction.REVEAL or m.agent_id == viewer
    ]
    return {
        'round': result.round,
        'moves': [serialize_move(m) for m in moves],
        'eliminations': list(result.eliminations),
        'revealedCells': [
            {'x': c.x, 'y': c.y, 'hasBomb': c.has_bomb, 'adjacentBombs': c.adjacent_bombs}
            for c in result.revealed_cells
        ],
    }


def serialize_summary(summary):
    payouts = summary.payouts
    return {
        'matchId': summary.match_id,
        'status': MatchStatus(summary.status).value,
        'winner': summary.winner,
        'rounds': summary.rounds,
        'seed': summary.seed,
        'payouts': {
            'pool': payouts.pool,
            'winner': payouts.winner_amount,
            'house': payouts.house_amount,
        } if payouts else None,
    }


def rejection_response(error):
    """JSON response for an engine rejection, or None if this is not one."""
    cause = getattr(error, 'cause', None)
    if isinstance(error, ApplicationError):
        cause = error
    if isinstance(cause, ApplicationError) and cause.type:
        status = STATUS_BY_CODE.get(cause.type, 400)
        return jsonify({'error': cause.message, 'code': cause.type}), status
    return None


def is_not_found(error):
    """True when Temporal reports that the workflow does not exist."""
    cause = getattr(error, 'cause', None)
    return any(
        isinstance(e, RPCError) and e.status == RPCStatusCode.NOT_FOUND
        for e in (error, cause)
    )


async def query_with_retry(handle, query, *args, max_retries=5):
    """Query with retry logic for workflow initialization."""
    for i in range(max_retries):
        try:
            return await handle.query(query, *args)
        except Exception as error:
            if i < max_retries - 1:
                logger.info(f"Query not ready yet, retrying in {(i + 1) * 100}ms...")
                await asyncio.sleep((i + 1) * 0.1)
                continue
            raise error


@app.route('/api/agents/register', methods=['POST'])
def register_agent():
    """Register an agent against a wallet."""
    data = request.json or {}
    wallet = data.get('wallet')
    if not wallet:
        return jsonify({'error': 'Wallet required'}), 400

    agent_id = f"agent_{uuid.uuid4().hex[:8]}"
    store.register_agent(agent_id, wallet)
    logger.info(f"Registered agent {agent_id}")
    return jsonify({'agentId': agent_id})


@app.route('/api/matches', methods=['GET'])
def list_matches():
    """List matches, optionally filtered by status, largest pool first."""
    status = request.args.get('status')
    try:
        async def query_all(match_ids):
            handles = [temporal_client.get_workflow_handle(match_id) for match_id in match_ids]
            return await asyncio.gather(
                *(h.query(MatchWorkflow.get_public_state_query) for h in handles),
                return_exceptions=True,
            )

        match_ids = store.match_ids()
        results = asyncio.run(query_all(match_ids))
        states = []
        for match_id, result in zip(match_ids, results):
            if not isinstance(result, BaseException):
                states.append(result)
            elif is_not_found(result):
                # Workflow aged out of retention
                logger.info(f"Dropping match {match_id}: workflow no longer exists")
                store.remove_match(match_id)
            else:
                logger.warning(f"Skipping match {match_id} in listing: {result}")

        if status:
            states = [s for s in states if MatchStatus(s.status).value == status]
        states = sorted(states, key=lambda s: s.pool, reverse=True)
        return jsonify([serialize_public_state(s) for s in states])

    except Exception as error:
        logger.error(f"Error listing matches: {error}")
        return jsonify({'error': 'Failed to list matches'}), 500


@app.route('/api/matches', methods=['POST'])
def create_match():
    """Create a new match."""
    try:
        data = request.json or {}
        stake = data.get('stake')
        wallet = data.get('wallet')

        if not isinstance(stake, int) or isinstance(stake, bool) or stake <= 0:
            return jsonify({'error': 'Invalid stake amount'}), 400
        if not wallet:
            return jsonify({'error': 'Wallet required'}), 400

        match_id = f"match_{uuid.uuid4().hex[:8]}"
        create_request = CreateMatchRequest(
            stake_amount=stake,
            creator=wallet,
            config=MatchConfig.from_env(),
            blockhash=data.get('blockhash'),
        )

        async def start_workflow():
            await temporal_client.start_workflow(
                MatchWorkflow.run,
                args=[match_id, create_request],
                id=match_id,
                task_queue=TASK_QUEUE,
            )
            handle = temporal_client.get_workflow_handle(match_id)
            return await query_with_retry(handle, MatchWorkflow.get_public_state_query)

        state = asyncio.run(start_workflow())
        store.add_match(match_id)
        logger.info(f"Created match {match_id} with stake {stake}")
        return jsonify(serialize_public_state(state))

    except Exception as error:
        logger.error(f"Error creating match: {error}")
        return jsonify({'error': 'Failed to create match'}), 500


@app.route('/api/matches/<match_id>', methods=['GET'])
def get_match(match_id):
    """Get public match state."""
    try:
        handle = temporal_client.get_workflow_handle(match_id)
        state = asyncio.run(query_with_retry(handle, MatchWorkflow.get_public_state_query))
        return jsonify(serialize_public_state(state))

    except Exception as error:
        logger.error(f"Error getting match {match_id}: {error}")
        return jsonify({'error': 'Match not found'}), 404


@app.route('/api/matches/<match_id>/state', methods=['GET'])
def get_match_state(match_id):
    """Get match state with the board as seen by an agent."""
    agent_id = request.args.get('agentId', '')
    try:
        async def query_state():
            handle = temporal_client.get_workflow_handle(match_id)
            state = await query_with_retry(handle, MatchWorkflow.get_public_state_query)
            board = await handle.query(MatchWorkflow.get_board_query, agent_id)
            return state, board

        state, board = asyncio.run(query_state())
        body = serialize_public_state(state)
        if board:
            body['board'] = serialize_board(board)
        return jsonify(body)

    except Exception as error:
        logger.error(f"Error getting state for match {match_id}: {error}")
        return jsonify({'error': 'Match not found'}), 404


@app.route('/api/matches/<match_id>/history', methods=['GET'])
def get_match_history(match_id):
    """Resolved rounds, oldest first."""
    viewer = request.args.get('agentId')
    try:
        handle = temporal_client.get_workflow_handle(match_id)
        history = asyncio.run(handle.query(MatchWorkflow.get_history_query))
        return jsonify([serialize_round(r, viewer) for r in history])

    except Exception as error:
        logger.error(f"Error getting history for match {match_id}: {error}")
        return jsonify({'error': 'Match not found'}), 404


@app.route('/api/matches/<match_id>/seed', methods=['GET'])
def get_match_seed(match_id):
    """Verification record; only available once the match has settled."""
    try:
        async def query_seed():
            handle = temporal_client.get_workflow_handle(match_id)
            state = await handle.query(MatchWorkflow.get_public_state_query)
            if MatchStatus(state.status) != MatchStatus.SETTLED:
                return None
            return await handle.query(MatchWorkflow.get_verification_query)

        record = asyncio.run(query_seed())
        if record is None:
            return jsonify({'error': 'Seed only available after the match settles', 'code': 'SeedWithheld'}), 403
        return jsonify({'seed': record.seed, 'gridSize': record.grid_size, 'bombCount': record.bomb_count})

    except Exception as error:
        logger.error(f"Error getting seed for match {match_id}: {error}")
        return jsonify({'error': 'Match not found'}), 404


@app.route('/api/matches/<match_id>/result', methods=['GET'])
def get_match_result(match_id):
    """Winner, payouts and seed once settled."""
    try:
        handle = temporal_client.get_workflow_handle(match_id)
        summary = asyncio.run(handle.query(MatchWorkflow.get_summary_query))
        return jsonify(serialize_summary(summary))

    except Exception as error:
        logger.error(f"Error getting result for match {match_id}: {error}")
        return jsonify({'error': 'Match not found'}), 404


@app.route('/api/matches/<match_id>/join', methods=['POST'])
def join_match(match_id):
    """Join a forming match."""
    data = request.json or {}
    agent_id = data.get('agentId')
    wallet = data.get('wallet')
    if not wallet and agent_id:
        record = store.get_agent(agent_id)
        wallet = record.wallet if record else None

    if not agent_id or not wallet:
        return jsonify({'error': 'agentId and wallet required'}), 400

    try:
        async def execute_join():
            handle = temporal_client.get_workflow_handle(match_id)
            return await handle.execute_update(
                MatchWorkflow.join_match_update,
                JoinRequest(agent_id=agent_id, wallet=wallet),
            )

        state = asyncio.run(execute_join())
        return jsonify(serialize_public_state(state))

    except Exception as error:
        rejected = rejection_response(error)
        if rejected:
            return rejected
        if is_not_found(error):
            return jsonify({'error': 'Match not found'}), 404
        logger.error(f"Error joining match {match_id}: {error}")
        return jsonify({'error': 'Failed to join match'}), 500


@app.route('/api/matches/<match_id>/move', methods=['POST'])
def submit_move(match_id):
    """Submit a move for the current round."""
    data = request.json or {}

    # Validate move request
    if not isinstance(data.get('x'), int) or isinstance(data.get('x'), bool) or \
       not isinstance(data.get('y'), int) or isinstance(data.get('y'), bool) or \
       not data.get('agentId') or \
       data.get('action') not in MOVE_ACTIONS:
        return jsonify({'error': 'Invalid move request'}), 400

    move_request = MoveRequest(
        agent_id=data['agentId'],
        action=data['action'],
        x=data['x'],
        y=data['y'],
    )

    try:
        async def execute_move():
            handle = temporal_client.get_workflow_handle(match_id)
            return await handle.execute_update(MatchWorkflow.submit_move_update, move_request)

        move = asyncio.run(execute_move())
        return jsonify({'success': True, 'move': serialize_move(move)})

    except Exception as error:
        rejected = rejection_response(error)
        if rejected:
            return rejected
        if is_not_found(error):
            return jsonify({'error': 'Match not found'}), 404
        logger.error(f"Error submitting move to match {match_id}: {error}")
        return jsonify({'error': 'Failed to submit move'}), 500


@app.route('/api/verify', methods=['GET'])
def verify():
    """Recompute a board's bomb set from its seed."""
    seed = request.args.get('seed')
    if not seed:
        return jsonify({'error': 'seed required'}), 400
    try:
        grid_size = int(request.args.get('gridSize', MatchConfig.grid_size))
        bomb_count = int(request.args.get('bombCount', MatchConfig.bomb_count))
        bombs = verify_board(seed, grid_size, bomb_count)
    except (ValueError, BoardConfigError) as error:
        return jsonify({'error': str(error)}), 400

    return jsonify({
        'seed': seed,
        'gridSize': grid_size,
        'bombCount': bomb_count,
        'bombs': [list(pos) for pos in sorted(bombs)],
    })


@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({
        'status': 'OK',
        'timestamp': datetime.now().isoformat()
    })


async def initialize_client():
    """Initialize Temporal client."""
    global temporal_client
    temporal_client = await get_temporal_client()
    logger.info("Connected to Temporal server")


def main():
    """Start the Flask server."""
    try:
        asyncio.run(initialize_client())

        port = int(os.getenv("PORT", 3000))
        logger.info(f"minematch server running on http://localhost:{port}")
        logger.info("Make sure to start the Temporal worker in another terminal: python -m minematch.worker")

        app.run(host='0.0.0.0', port=port, debug=False)

    except Exception as error:
        logger.error(f"Failed to start server: {error}")
        exit(1)


if __name__ == "__main__":
    main()
