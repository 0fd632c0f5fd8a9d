"""
Storm schedule loading

Reads the static storm schedule (JSON) into immutable StormSchedule records.
Called once from the app factory; nothing writes the schedule afterwards.
"""

import json

from hurricane_game.models.storm import (
    CHECKPOINT_CLOSING_HOURS,
    KIND_BASE,
    KIND_PREDICTION,
    Checkpoint,
    StormSchedule,
)
from hurricane_game.utils.timezone_utils import parse_iso_datetime


class ScheduleLoadError(Exception):
    """The schedule file is missing, unreadable or malformed"""


def _parse_checkpoint(storm_id, raw):
    if not isinstance(raw, dict):
        raise ScheduleLoadError(f"Storm '{storm_id}': checkpoint must be an object")

    label = raw.get("timeframe", raw.get("label"))
    kind = raw.get("type", raw.get("kind"))
    if kind not in (KIND_BASE, KIND_PREDICTION):
        raise ScheduleLoadError(
            f"Storm '{storm_id}': unknown checkpoint type {kind!r}"
        )
    if kind == KIND_PREDICTION and (
        not isinstance(label, str) or label not in CHECKPOINT_CLOSING_HOURS
    ):
        raise ScheduleLoadError(
            f"Storm '{storm_id}': unknown checkpoint label {label!r}"
        )

    try:
        return Checkpoint(
            label=str(label),
            kind=kind,
            lat=float(raw["lat"]),
            lon=float(raw["lon"]),
            wind_speed=float(raw["windSpeed"]),
            pressure=float(raw["pressure"]),
            category=int(raw.get("category", 0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ScheduleLoadError(
            f"Storm '{storm_id}' checkpoint {label!r}: invalid value ({e})"
        ) from e


def _validate_order(storm_id, checkpoints):
    """Base checkpoint first, then prediction checkpoints in closing-hour order"""
    bases = [c for c in checkpoints if c.kind == KIND_BASE]
    if len(bases) > 1:
        raise ScheduleLoadError(f"Storm '{storm_id}': more than one base checkpoint")
    if bases and checkpoints[0].kind != KIND_BASE:
        raise ScheduleLoadError(f"Storm '{storm_id}': base checkpoint must come first")

    hours = [
        CHECKPOINT_CLOSING_HOURS[c.label] for c in checkpoints if c.is_prediction
    ]
    if hours != sorted(set(hours)):
        raise ScheduleLoadError(
            f"Storm '{storm_id}': prediction checkpoints out of order or duplicated"
        )


def parse_storm(raw):
    """Build one StormSchedule from its JSON object"""
    if not isinstance(raw, dict):
        raise ScheduleLoadError("Storm entry must be an object")

    storm_id = raw.get("id")
    if not storm_id or not isinstance(storm_id, str):
        raise ScheduleLoadError("Storm entry without an 'id'")

    try:
        game_start = parse_iso_datetime(raw["gameStart"])
        game_end = parse_iso_datetime(raw["gameEnd"])
    except (KeyError, ValueError) as e:
        raise ScheduleLoadError(f"Storm '{storm_id}': invalid game window ({e})") from e

    if game_end <= game_start:
        raise ScheduleLoadError(f"Storm '{storm_id}': gameEnd must be after gameStart")

    timeframes = raw.get("timeframes") or []
    if not isinstance(timeframes, list):
        raise ScheduleLoadError(f"Storm '{storm_id}': timeframes must be a list")

    checkpoints = tuple(_parse_checkpoint(storm_id, item) for item in timeframes)
    _validate_order(storm_id, checkpoints)

    try:
        year = int(raw.get("year", 0))
    except (TypeError, ValueError) as e:
        raise ScheduleLoadError(f"Storm '{storm_id}': invalid year ({e})") from e

    return StormSchedule(
        id=storm_id,
        name=str(raw.get("name", storm_id)),
        year=year,
        game_start=game_start,
        game_end=game_end,
        checkpoints=checkpoints,
    )


def parse_schedule(data):
    """
    Build the schedule from decoded JSON.

    Accepts either a bare list of storms or an object with a "storms" list.
    """
    if isinstance(data, dict):
        data = data.get("storms")
    if not isinstance(data, list):
        raise ScheduleLoadError("Schedule must be a list of storms")

    storms = tuple(parse_storm(item) for item in data)

    seen = set()
    for storm in storms:
        if storm.id in seen:
            raise ScheduleLoadError(f"Duplicate storm id '{storm.id}'")
        seen.add(storm.id)

    return storms


def load_schedule(path):
    """
    Load the storm schedule file.

    Args:
        path: path to a JSON schedule file

    Returns:
        tuple of StormSchedule, in file order

    Raises:
        ScheduleLoadError: the file cannot be read or is malformed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ScheduleLoadError(f"Cannot read schedule file {path}: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ScheduleLoadError(f"Schedule file {path} is not valid JSON: {e}") from e

    return parse_schedule(data)
