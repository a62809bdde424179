"""
Flask CLI commands for moderators.

Usage:
    flask scan-text "Some post body" --title "Optional title"   # Dry-run the scanner
    flask forum-status <user_id>                                 # Warning count, history, block state
"""

from __future__ import annotations

import click
from flask.cli import with_appcontext


@click.command("scan-text")
@click.argument("text")
@click.option("--title", default=None, help="Optional post title, scanned together with the text.")
def scan_text_command(text: str, title: str | None) -> None:
    """Run the moderation scanner on TEXT without recording anything."""
    from agrihub.services.moderation import moderate_content

    result = moderate_content(text, title)
    click.echo(f"Flagged:  {'yes' if result.flagged else 'no'}")
    click.echo(f"Severity: {result.severity}")
    if result.matched_terms:
        click.echo(f"Matched:  {', '.join(sorted(result.matched_terms))}")


@click.command("forum-status")
@click.argument("user_id")
@with_appcontext
def forum_status_command(user_id: str) -> None:
    """Show a user's forum warnings and block state (read-only)."""
    from agrihub.services import forum
    from agrihub.services.warning_ledger import check_access

    try:
        _profile, state = forum.load_moderation_profile(user_id)
    except forum.UserNotFound:
        click.echo(f"No profile found for user {user_id}.")
        raise SystemExit(1)

    decision = check_access(state)
    click.echo(f"Warnings: {state.warning_count}")
    click.echo(f"Access:   {'allowed' if decision.allowed else 'denied (' + decision.kind + ')'}")
    if not decision.allowed:
        click.echo(f"          {decision.detail}")

    for i, entry in enumerate(state.warning_history, 1):
        click.echo(f"  [{i}] {entry.timestamp:%Y-%m-%d %H:%M} {entry.reason}")
