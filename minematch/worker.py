"""Temporal worker hosting match workflows."""
import asyncio
import logging
from temporalio.worker import Worker
from minematch.workflows import MatchWorkflow
from minematch import activities
from minematch.client_provider import TASK_QUEUE, get_temporal_client

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_worker(client) -> Worker:
    """Worker registered with every match workflow and activity."""
    return Worker(
        client,
        task_queue=TASK_QUEUE,
        workflows=[MatchWorkflow],
        activities=[
            activities.draw_seed_material,
            activities.settle_match,
        ],
    )


async def main():
    """Start the Temporal worker."""
    client = await get_temporal_client()
    worker = build_worker(client)

    logger.info("Worker started, connected to Temporal")
    logger.info(f"Listening on task queue: {TASK_QUEUE}")

    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
