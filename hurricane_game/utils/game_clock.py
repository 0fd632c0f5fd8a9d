"""
Game clock for the hurricane prediction game

Decides which storm is current and which checkpoint is open for predictions.
Everything here is a pure function of an instant and the immutable schedule,
so the scheduler, the API and the CLI all agree on the same answer.
"""

import math
from datetime import timedelta

from hurricane_game.models.storm import (
    CHECKPOINT_CLOSING_HOURS,
    CHECKPOINT_LABELS,
)
from hurricane_game.utils.timezone_utils import (
    ensure_utc,
    hours_between,
    parse_iso_datetime,
)

ROTATION_PERIODS = {
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}


def active_storm(schedule, now):
    """
    Get the storm whose [game_start, game_end) window contains now.

    Falls back to the first storm when no window matches; None only when the
    schedule is empty.
    """
    if not schedule:
        return None

    now = ensure_utc(now)
    for storm in schedule:
        if storm.game_start <= now < storm.game_end:
            return storm

    return schedule[0]


def active_checkpoint(storm, now):
    """
    Get the checkpoint label currently open for predictions.

    Hours since game start map onto labels with closed lower bounds:
    [0,6) -> 0600, [6,12) -> 1200, [12,18) -> 1800, [18,24) -> 0000.
    Returns None before the game starts, from hour 24 on, or for a storm
    without checkpoints.
    """
    if storm is None or not storm.checkpoints:
        return None

    hours = hours_between(storm.game_start, now)
    if hours < 0:
        return None

    for label in CHECKPOINT_LABELS:
        if hours < CHECKPOINT_CLOSING_HOURS[label]:
            return label

    return None


def checkpoint_closing_time(storm, label):
    """Instant at which a checkpoint closes and becomes scoreable"""
    return storm.game_start + timedelta(hours=CHECKPOINT_CLOSING_HOURS[label])


def closed_checkpoints(storm, window_start, window_end):
    """
    Labels whose closing boundary falls in the half-open window (start, end].

    The scheduler passes (now - poll interval, now], so every boundary lands
    in exactly one poll.
    """
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)

    labels = []
    for checkpoint in storm.prediction_checkpoints:
        if checkpoint.label not in CHECKPOINT_CLOSING_HOURS:
            continue
        closes_at = checkpoint_closing_time(storm, checkpoint.label)
        if window_start < closes_at <= window_end:
            labels.append(checkpoint.label)
    return labels


def hours_until_next_checkpoint(storm, now):
    """
    Hours until the next checkpoint unlocks.

    Before the game starts this is the time to game start; once the last
    checkpoint has closed it is None.
    """
    if storm is None or not storm.checkpoints:
        return None

    hours = hours_between(storm.game_start, now)
    if hours < 0:
        return round(-hours, 2)

    for label in CHECKPOINT_LABELS:
        boundary = CHECKPOINT_CLOSING_HOURS[label]
        if hours < boundary:
            return round(boundary - hours, 2)

    return None


def revealed_checkpoints(storm, now):
    """Labels whose checkpoint has closed by now, in game order"""
    if storm is None:
        return []

    now = ensure_utc(now)
    return [
        c.label
        for c in storm.prediction_checkpoints
        if c.label in CHECKPOINT_CLOSING_HOURS
        and checkpoint_closing_time(storm, c.label) <= now
    ]


def game_progress(storm, now):
    """Fraction of the storm's game window elapsed at now, clamped to [0, 1]"""
    if storm is None:
        return 0.0

    total = (storm.game_end - storm.game_start).total_seconds()
    elapsed = (ensure_utc(now) - storm.game_start).total_seconds()
    return round(min(max(elapsed / total, 0.0), 1.0), 4)


def rotation_index(now, epoch, period, count):
    """Whole periods elapsed since epoch, modulo the schedule length"""
    if count <= 0:
        raise ValueError("Rotation needs at least one storm")

    elapsed = ensure_utc(now) - ensure_utc(epoch)
    periods = math.floor(elapsed / period)
    return periods % count


def _period_start(now, epoch, period):
    elapsed = ensure_utc(now) - ensure_utc(epoch)
    return ensure_utc(epoch) + period * math.floor(elapsed / period)


def rotation_storm(schedule, now, epoch, period):
    """
    The storm chosen by rotation, rebased onto the current period.

    The chosen storm's game window is moved to start at the beginning of the
    current day (or week) and lasts one period, so its checkpoints open and
    close on that period's clock.
    """
    if not schedule:
        return None

    index = rotation_index(now, epoch, period, len(schedule))
    return schedule[index].rebased(_period_start(now, epoch, period), period)


def current_storm(schedule, now, rotation=None):
    """
    The storm the game is currently played on.

    Args:
        rotation: None to use the schedule windows, or (epoch, period)
    """
    if rotation is None:
        return active_storm(schedule, now)

    epoch, period = rotation
    return rotation_storm(schedule, now, epoch, period)


def scoring_candidates(schedule, now, rotation=None):
    """
    Storms whose checkpoint boundaries the scheduler must check at now.

    With rotation only the current and previous periods can have a boundary
    near now (hour 24 of yesterday's storm is midnight today).
    """
    if not schedule:
        return []

    if rotation is None:
        return list(schedule)

    epoch, period = rotation
    candidates = [
        rotation_storm(schedule, now - period, epoch, period),
        rotation_storm(schedule, now, epoch, period),
    ]
    return candidates


def parse_rotation(period_name, epoch):
    """
    Build the rotation tuple used above from configuration values.

    Returns None when rotation is disabled ("none" or empty).
    """
    if not period_name or period_name == "none":
        return None

    if period_name not in ROTATION_PERIODS:
        raise ValueError(
            f"Unknown rotation period '{period_name}' "
            f"(expected one of: {', '.join(ROTATION_PERIODS)}, none)"
        )

    return ensure_utc(epoch), ROTATION_PERIODS[period_name]


def rotation_from_config(config):
    """Rotation tuple from ROTATION_PERIOD / ROTATION_EPOCH config values"""
    return parse_rotation(
        (config.get("ROTATION_PERIOD") or "none").lower(),
        parse_iso_datetime(config.get("ROTATION_EPOCH") or "2025-01-01T00:00:00Z"),
    )
