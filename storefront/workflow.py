"""
Refund dispatch as a Temporal workflow.

The workflow is a thin wrapper around RefundDispatcher: the dispatcher's
repositories and gateway are workflow proxies, so every store read, store
write and gateway call is an activity, and its clock is the workflow clock.
A worker crash in the middle of a refund resumes from the last completed
activity instead of leaving the refund stuck in DISPATCHING.
"""

import logging

from temporalio import workflow
from temporalio.client import Client, WorkflowHandle
from temporalio.common import WorkflowIDReusePolicy
from temporalio.exceptions import WorkflowAlreadyStartedError

from storefront.domain import RefundOutcome
from storefront.repos.temporal.proxies import (
    WorkflowCancellationRequestRepositoryProxy,
    WorkflowOrderRepositoryProxy,
    WorkflowPaymentGatewayProxy,
    WorkflowRefundRepositoryProxy,
)
from storefront.use_cases.refunds import RefundDispatcher

logger = logging.getLogger(__name__)


def refund_workflow_id(request_id: str) -> str:
    return f"refund-{request_id}"


@workflow.defn
class RefundDispatchWorkflow:
    def __init__(self) -> None:
        self.current_step = "initialized"

    @workflow.query
    def get_current_step(self) -> str:
        """Query method to get the current workflow step"""
        return str(self.current_step)

    @workflow.run
    async def run(self, request_id: str) -> RefundOutcome:
        workflow.logger.info(
            "Starting refund dispatch workflow",
            extra={
                "request_id": request_id,
                "workflow_id": workflow.info().workflow_id,
                "workflow_run_id": workflow.info().run_id,
            },
        )

        self.current_step = "dispatching"
        dispatcher = RefundDispatcher(
            order_repo=WorkflowOrderRepositoryProxy(),  # type: ignore[abstract]
            request_repo=WorkflowCancellationRequestRepositoryProxy(),  # type: ignore[abstract]
            refund_repo=WorkflowRefundRepositoryProxy(),  # type: ignore[abstract]
            gateway=WorkflowPaymentGatewayProxy(),  # type: ignore[abstract]
            clock=workflow.now,
        )

        try:
            outcome = await dispatcher.dispatch_for_request(request_id)
        except Exception as e:
            self.current_step = "failed"
            workflow.logger.error(
                "Refund dispatch workflow failed",
                extra={
                    "request_id": request_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise

        self.current_step = "completed"
        workflow.logger.info(
            "Refund dispatch workflow completed",
            extra={
                "request_id": request_id,
                "initiated": outcome.initiated,
                "refund_status": (
                    outcome.refund.status.value if outcome.refund else None
                ),
            },
        )
        return outcome


async def dispatch_refund(
    client: Client, request_id: str, task_queue: str
) -> RefundOutcome:
    """Run RefundDispatchWorkflow for a request and wait for its outcome.

    A dispatch already running for the same request is joined rather than
    started twice.
    """
    workflow_id = refund_workflow_id(request_id)
    handle: WorkflowHandle
    try:
        handle = await client.start_workflow(
            RefundDispatchWorkflow.run,
            request_id,
            id=workflow_id,
            task_queue=task_queue,
            id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
        )
        logger.info(
            "Refund dispatch workflow started",
            extra={"request_id": request_id, "workflow_id": workflow_id},
        )
    except WorkflowAlreadyStartedError:
        logger.info(
            "Refund dispatch already running, joining it",
            extra={"request_id": request_id, "workflow_id": workflow_id},
        )
        handle = client.get_workflow_handle(
            workflow_id, result_type=RefundOutcome
        )
    return await handle.result()
