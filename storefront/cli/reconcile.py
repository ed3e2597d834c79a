#!/usr/bin/env python3
"""
Operator CLI for payment reconciliation and refund follow-up.

Commands:
- cases: list open reconciliation cases
- reverify CASE_ID: re-check a case's payment proof with the gateway
- resolve CASE_ID: close a case by confirming the payment or voiding the
  order
- retry-refund REQUEST_ID: re-dispatch a failed or interrupted refund
  through the Temporal RefundDispatchWorkflow
- refunds: list refunds, optionally by status

Works against the backend named by STOREFRONT_BACKEND.
"""

import asyncio
import logging
import sys
from typing import Optional

import click

from storefront.backends import (
    build_repositories,
    reconciliation_for,
    refund_dispatcher_for,
)
from storefront.config import setup_logging, temporal_endpoint, temporal_task_queue
from storefront.domain import (
    ReconciliationAction,
    ReconciliationCase,
    Refund,
    RefundOutcome,
    RefundStatus,
)
from storefront.exceptions import StorefrontError
from storefront.repos.temporal.client import get_temporal_client_with_retries
from storefront.workflow import dispatch_refund

logger = logging.getLogger(__name__)

ACTIONS = {
    "confirm-payment": ReconciliationAction.CONFIRM_PAYMENT,
    "void-order": ReconciliationAction.VOID_ORDER,
}


def format_case(case: ReconciliationCase) -> str:
    state = (
        f"resolved:{case.resolution.value}" if case.resolution else "open"
    )
    return (
        f"{case.case_id}  {case.kind.value}  {state}  "
        f"reference={case.reference}  order={case.order_id or '-'}  "
        f"payment={case.payment_reference or '-'}\n    {case.detail}"
    )


def format_refund(refund: Refund) -> str:
    line = (
        f"{refund.refund_id}  {refund.status.value}  "
        f"order={refund.order_id}  request={refund.request_id}  "
        f"amount={refund.refund_amount}  attempts={refund.attempts}"
    )
    if refund.failure_reason:
        line += f"\n    failure: {refund.failure_reason}"
    return line


def format_outcome(outcome: RefundOutcome) -> str:
    if outcome.refund is None:
        return f"No refund: {outcome.reason}"
    status = outcome.refund.status.value
    if outcome.initiated:
        return (
            f"Refund {outcome.refund.refund_id} {status} for "
            f"{outcome.refund.refund_amount}"
        )
    return f"Refund {outcome.refund.refund_id} {status}: {outcome.reason}"


async def _list_cases(show_all: bool) -> None:
    reconciliation = reconciliation_for(await build_repositories())
    cases = await reconciliation.list_cases(None if show_all else False)
    if not cases:
        click.echo("No reconciliation cases.")
        return
    for case in cases:
        click.echo(format_case(case))


async def _reverify(case_id: str) -> None:
    reconciliation = reconciliation_for(await build_repositories())
    case = await reconciliation.reverify(case_id)
    if case.resolved:
        click.echo(f"Payment verified; case {case_id} closed.")
    else:
        click.echo(f"Payment still unverified; case {case_id} stays open.")


async def _resolve(
    case_id: str, action: ReconciliationAction, actor: str, note: Optional[str]
) -> None:
    reconciliation = reconciliation_for(await build_repositories())
    case = await reconciliation.resolve_case(case_id, action, actor, note)
    click.echo(format_case(case))


async def _retry_refund(request_id: str, in_process: bool) -> None:
    if in_process:
        dispatcher = refund_dispatcher_for(await build_repositories())
        outcome = await dispatcher.dispatch_for_request(request_id)
    else:
        client = await get_temporal_client_with_retries(temporal_endpoint())
        outcome = await dispatch_refund(
            client, request_id, temporal_task_queue()
        )
    click.echo(format_outcome(outcome))


async def _list_refunds(status: Optional[RefundStatus]) -> None:
    dispatcher = refund_dispatcher_for(await build_repositories())
    refunds = await dispatcher.list_refunds(status)
    if not refunds:
        click.echo("No refunds.")
        return
    for refund in refunds:
        click.echo(format_refund(refund))


def run(coro) -> None:
    """Run a command coroutine, reporting business errors without a trace."""
    try:
        asyncio.run(coro)
    except StorefrontError as e:
        logger.info(
            "Command refused",
            extra={"error_type": type(e).__name__, "error": e.message},
        )
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {str(e)}", exc_info=True)
        click.echo(f"Command failed: {str(e)}", err=True)
        sys.exit(1)


@click.group()
def cli() -> None:
    """Reconcile payments and follow up on refunds."""
    setup_logging()


@cli.command()
@click.option(
    "--all", "show_all", is_flag=True, help="Include resolved cases"
)
def cases(show_all: bool) -> None:
    """List reconciliation cases, oldest first."""
    run(_list_cases(show_all))


@cli.command()
@click.argument("case_id")
def reverify(case_id: str) -> None:
    """Re-check a case's payment proof and close it if it verifies."""
    run(_reverify(case_id))


@cli.command()
@click.argument("case_id")
@click.option(
    "--action",
    type=click.Choice(sorted(ACTIONS)),
    required=True,
    help="Confirm the payment or void the order",
)
@click.option("--actor", required=True, help="Operator id recorded on the case")
@click.option("--note", default=None, help="Resolution note")
def resolve(
    case_id: str, action: str, actor: str, note: Optional[str]
) -> None:
    """Close a reconciliation case."""
    run(_resolve(case_id, ACTIONS[action], actor, note))


@cli.command("retry-refund")
@click.argument("request_id")
@click.option(
    "--in-process",
    is_flag=True,
    help="Dispatch directly instead of through Temporal",
)
def retry_refund(request_id: str, in_process: bool) -> None:
    """Re-dispatch the refund for an approved cancellation request."""
    run(_retry_refund(request_id, in_process))


@cli.command()
@click.option(
    "--status",
    type=click.Choice([s.value for s in RefundStatus]),
    default=None,
    help="Only refunds in this status",
)
def refunds(status: Optional[str]) -> None:
    """List refunds, newest first."""
    run(_list_refunds(RefundStatus(status) if status else None))


if __name__ == "__main__":
    cli()
