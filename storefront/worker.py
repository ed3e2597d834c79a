"""
Temporal worker that runs the refund dispatch workflow and its activities.
"""

import asyncio
import logging

from temporalio.worker import Worker

from storefront.config import setup_logging, temporal_endpoint, temporal_task_queue
from storefront.repos.postgresql import apply_schema, create_pool
from storefront.repos.temporal.activities import (
    TemporalPostgreSQLCancellationRequestRepository,
    TemporalPostgreSQLOrderRepository,
    TemporalPostgreSQLRefundRepository,
    TemporalRazorpayPaymentGateway,
    bound_activities,
)
from storefront.repos.temporal.client import get_temporal_client_with_retries
from storefront.workflow import RefundDispatchWorkflow

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    """Run the Temporal worker"""
    setup_logging()

    endpoint = temporal_endpoint()
    task_queue = temporal_task_queue()
    logger.info(
        "Starting Temporal worker",
        extra={"temporal_endpoint": endpoint, "task_queue": task_queue},
    )

    client = await get_temporal_client_with_retries(endpoint)
    pool = await create_pool()
    await apply_schema(pool)

    activities = bound_activities(
        TemporalPostgreSQLOrderRepository(pool),
        TemporalPostgreSQLCancellationRequestRepository(pool),
        TemporalPostgreSQLRefundRepository(pool),
        TemporalRazorpayPaymentGateway(),
    )

    logger.info(
        "Creating Temporal worker",
        extra={
            "task_queue": task_queue,
            "workflow_count": 1,
            "activity_count": len(activities),
        },
    )

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=[RefundDispatchWorkflow],
        activities=activities,
    )

    try:
        await worker.run()
    finally:
        await pool.close()


def main() -> None:
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
