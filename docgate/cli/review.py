"""
docgate CLI - Review Queue Commands

Commands:
    list    - List review items (pending by default)
    show    - Show one item with its payload
    approve - Approve a pending item
    reject  - Reject a pending item
    stats   - Queue statistics
    cleanup - Drop all but the most recent items
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.panel import Panel

from docgate.cli import console, load_cli_config, review_app
from docgate.cli.output import (
    format_timestamp,
    print_error,
    print_json,
    print_key_value,
    print_success,
    print_table,
    status_markup,
    truncate_string,
)
from docgate.security import (
    InvalidReviewTransitionError,
    ReviewItem,
    ReviewNotFoundError,
    ReviewQueue,
    ReviewQueueError,
    SecurityAuditLog,
)

_STATUS_CHOICES = ("pending", "approved", "rejected", "all")


def _open_queue() -> ReviewQueue:
    config = load_cli_config()
    return ReviewQueue(
        config.review.queue_path or None,
        audit=SecurityAuditLog(config.audit.log_path or None),
        max_retained=config.review.max_retained,
    )


def _run(coro):
    try:
        return asyncio.run(coro)
    except ReviewQueueError as exc:
        print_error(str(exc))
        raise typer.Exit(1)


@review_app.command("list")
def list_reviews(
    status: str = typer.Option(
        "pending",
        "--status",
        "-s",
        help="Filter by status: pending, approved, rejected, all.",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    List review items, oldest first.
    """
    status = status.lower()
    if status not in _STATUS_CHOICES:
        print_error(f"Unknown status: {status}", hint=f"Use one of: {', '.join(_STATUS_CHOICES)}")
        raise typer.Exit(2)

    items: list[ReviewItem] = _run(_open_queue().list_items())
    if status != "all":
        items = [i for i in items if i.status.value.lower() == status]

    if format == "json":
        print_json([i.to_dict() for i in items])
        return

    if not items:
        label = "" if status == "all" else f"{status} "
        console.print(f"[dim]No {label}review items[/dim]")
        return

    print_table(
        f"Review items ({status})",
        ["ID", "Status", "Flagged", "Reason", "Issues"],
        [
            [
                i.id,
                status_markup(i.status.value),
                format_timestamp(i.flagged_at),
                truncate_string(i.reason, 60),
                str(len(i.security_issues)),
            ]
            for i in items
        ],
        styles=["cyan", None, None, None, "dim"],
    )


@review_app.command("show")
def show_review(
    review_id: str = typer.Argument(..., help="Review item id."),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    Show a review item, including the blocked output.
    """
    item: Optional[ReviewItem] = _run(_open_queue().get_review_item(review_id))
    if item is None:
        print_error(f"Review item {review_id} not found")
        raise typer.Exit(1)

    if format == "json":
        print_json(item.to_dict())
        return

    print_key_value(
        [
            ("ID", item.id),
            ("Status", status_markup(item.status.value)),
            ("Reason", item.reason),
            ("Flagged at", format_timestamp(item.flagged_at)),
            ("Flagged by", item.flagged_by),
            ("Reviewed by", item.reviewed_by or "-"),
            ("Reviewed at", format_timestamp(item.reviewed_at)),
            ("Notes", item.notes or "-"),
        ],
        title="Review item",
    )
    if item.security_issues:
        console.print()
        console.print("[bold]Security issues[/bold]")
        for issue in item.security_issues:
            console.print(f"  [dim]*[/dim] {issue}")

    content = item.payload.get("content")
    if content:
        console.print()
        console.print(Panel(content, title="Blocked output", border_style="yellow"))


def _decide(review_id: str, reviewed_by: str, notes: Optional[str], approve: bool) -> None:
    queue = _open_queue()
    action = queue.approve if approve else queue.reject
    try:
        item: ReviewItem = asyncio.run(action(review_id, reviewed_by, notes))
    except ReviewNotFoundError as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    except InvalidReviewTransitionError as exc:
        print_error(str(exc), hint="Only PENDING items can be approved or rejected")
        raise typer.Exit(1)
    except (ReviewQueueError, ValueError) as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    print_success(f"Review {item.id} {item.status.value.lower()} by {reviewed_by}")


@review_app.command("approve")
def approve_review(
    review_id: str = typer.Argument(..., help="Review item id."),
    reviewed_by: str = typer.Option(..., "--by", "-b", help="Reviewer id."),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Reviewer notes."),
) -> None:
    """
    Approve a pending item for distribution.
    """
    _decide(review_id, reviewed_by, notes, approve=True)


@review_app.command("reject")
def reject_review(
    review_id: str = typer.Argument(..., help="Review item id."),
    reviewed_by: str = typer.Option(..., "--by", "-b", help="Reviewer id."),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Reviewer notes."),
) -> None:
    """
    Reject a pending item; it will not be distributed.
    """
    _decide(review_id, reviewed_by, notes, approve=False)


@review_app.command("stats")
def review_stats(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    Show review queue statistics.
    """
    stats = _run(_open_queue().get_statistics())
    if format == "json":
        print_json(stats)
        return
    print_key_value([(k.capitalize(), v) for k, v in stats.items()], title="Review queue")


@review_app.command("cleanup")
def cleanup_reviews(
    keep: Optional[int] = typer.Option(
        None,
        "--keep",
        "-k",
        min=0,
        help="Number of most recent items to keep (default: configured maximum).",
    ),
) -> None:
    """
    Remove old review items beyond the retention limit.
    """
    removed = _run(_open_queue().cleanup_old_reviews(keep))
    print_success(f"Removed {removed} review item(s)")
