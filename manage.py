#!/usr/bin/env python3
"""
Hurricane Game Management CLI

This script provides command-line management functionality for the hurricane
prediction game: manual scoring, badge catalog maintenance and status.
"""

import logging
import os

import click
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# The CLI never runs the background scoring job itself
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from hurricane_game import create_app, db  # noqa: E402
from hurricane_game.services.badge_service import (  # noqa: E402
    BadgeEvaluator,
    seed_badge_definitions,
)
from hurricane_game.services.repository import GameRepository  # noqa: E402
from hurricane_game.services.scoring_service import ScoringService  # noqa: E402
from hurricane_game.utils import game_clock, timezone_utils  # noqa: E402

app = create_app()


def _scoring_service():
    repository = GameRepository(db.session)
    return ScoringService(repository, BadgeEvaluator(repository))


def _schedule():
    return app.extensions.get("storm_schedule", ())


def _echo_result(result):
    click.echo(
        f"  {result.storm_id}/{result.checkpoint}: {result.scored} scored, "
        f"{result.skipped} skipped, {result.failed} failed"
    )
    for username, badges in result.badges_awarded.items():
        click.echo(f"    🏅 {username}: {', '.join(badges)}")


@click.group()
def cli():
    """Hurricane Game Management CLI"""
    pass


# Scoring Commands
@cli.command()
@click.argument("storm_id")
@click.argument("checkpoint")
@with_appcontext
def score(storm_id, checkpoint):
    """Run a scoring pass for one storm checkpoint"""
    storm = next((s for s in _schedule() if s.id == storm_id), None)
    if storm is None:
        click.echo(f"❌ Storm {storm_id} not found in the schedule!")
        return

    try:
        result = _scoring_service().score_storm_checkpoint(storm, checkpoint)
    except ValueError as e:
        click.echo(f"❌ {e}")
        return
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error while scoring: {str(e)}")
        logging.error(f"Manual scoring failed - SQL error: {e}")
        return

    click.echo("✅ Scoring pass complete")
    _echo_result(result)


@cli.command()
@with_appcontext
def score_missed():
    """Score every checkpoint that has already closed"""
    now = timezone_utils.get_utc_time()
    rotation = game_clock.rotation_from_config(app.config)

    try:
        results = _scoring_service().score_missed_checkpoints(_schedule(), now, rotation)
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error while scoring: {str(e)}")
        logging.error(f"Missed-checkpoint sweep failed - SQL error: {e}")
        return

    touched = [r for r in results if r.scored or r.failed]
    if not touched:
        click.echo("✅ Nothing to score")
        return

    click.echo(f"✅ Scored {sum(r.scored for r in touched)} predictions")
    for result in touched:
        _echo_result(result)


# Schedule Commands
@cli.group()
def schedule():
    """Storm schedule commands"""
    pass


@schedule.command("list")
@with_appcontext
def list_storms():
    """List the loaded storm schedule"""
    error = app.extensions.get("storm_schedule_error")
    if error:
        click.echo(f"⚠️  Schedule failed to load: {error}")

    storms = _schedule()
    if not storms:
        click.echo("No storms loaded.")
        return

    now = timezone_utils.get_utc_time()
    current = game_clock.current_storm(
        storms, now, game_clock.rotation_from_config(app.config)
    )

    click.echo("Storms:")
    for storm in storms:
        marker = "🌀 CURRENT" if current and current.id == storm.id else "  "
        labels = ", ".join(c.label for c in storm.prediction_checkpoints)
        click.echo(f"  {marker} {storm.id}: {storm.name} ({storm.year}) [{labels}]")


# Badge Commands
@cli.group()
def badges():
    """Badge catalog commands"""
    pass


@badges.command()
@with_appcontext
def seed():
    """Insert missing badge definitions"""
    try:
        inserted = seed_badge_definitions(db.session)
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error seeding badges: {str(e)}")
        return

    click.echo(f"✅ Inserted {inserted} badge definitions")


@badges.command("list")
@with_appcontext
def list_badges():
    """List badge definitions"""
    definitions = GameRepository(db.session).badge_definitions()
    if not definitions:
        click.echo("No badge definitions found.")
        return

    click.echo("Badges:")
    for d in definitions:
        click.echo(
            f"  {d.icon or ' '} {d.badge_id} [{d.category}/{d.tier}] "
            f"{d.name} - {d.description} ({d.points_value} pts)"
        )


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command("init")
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        seed_badge_definitions(db.session)
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        seed_badge_definitions(db.session)
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🌀 Hurricane Game Status")
    click.echo("=" * 40)

    # Database connection
    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    # Schedule
    error = app.extensions.get("storm_schedule_error")
    if error:
        click.echo(f"⚠️  Schedule: degraded - {error}")
    else:
        click.echo(f"✅ Schedule: {len(_schedule())} storms loaded")

    now = timezone_utils.get_utc_time()
    storm = game_clock.current_storm(
        _schedule(), now, game_clock.rotation_from_config(app.config)
    )
    if storm:
        checkpoint = game_clock.active_checkpoint(storm, now)
        click.echo(f"🌀 Current Storm: {storm.name} ({storm.id})")
        click.echo(f"⏱️  Open Checkpoint: {checkpoint or 'none'}")

    counts = GameRepository(db.session).counts()
    click.echo(
        f"📝 Predictions: {counts['scored_predictions']}/{counts['predictions']} scored"
    )
    click.echo(f"👥 Players: {counts['users']}")
    click.echo(f"🏅 Badges Awarded: {counts['badges_awarded']}")


if __name__ == "__main__":
    with app.app_context():
        cli()
