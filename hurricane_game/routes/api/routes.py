from flask import current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from hurricane_game import db
from hurricane_game.models import Prediction
from hurricane_game.routes.api import bp
from hurricane_game.services.badge_service import BadgeEvaluator, badge_progress
from hurricane_game.services.repository import GameRepository
from hurricane_game.services.scoring_service import (
    ScoringService,
    actual_for_checkpoint,
)
from hurricane_game.utils import game_clock, timezone_utils
from hurricane_game.utils.cache_utils import (
    BADGE_DEFINITION_CACHE,
    LEADERBOARD_CACHE,
    CacheManager,
    cached_query,
)

ACTUAL_FIELDS = {
    "lat": "lat",
    "lon": "lon",
    "windSpeed": "wind_speed",
    "pressure": "pressure",
}
INVALID_ACTUAL_MESSAGE = "actual must contain finite numeric lat, lon, windSpeed, pressure"


def _schedule():
    return current_app.extensions.get("storm_schedule", ())


def _game_context(now=None):
    """Current storm, open checkpoint and the instant they were computed for"""
    now = now or timezone_utils.get_utc_time()
    rotation = game_clock.rotation_from_config(current_app.config)
    storm = game_clock.current_storm(_schedule(), now, rotation)
    return storm, game_clock.active_checkpoint(storm, now), now


def _find_storm(storm_id):
    for storm in _schedule():
        if storm.id == storm_id:
            return storm
    return None


def _repository():
    return GameRepository(db.session)


@cached_query(LEADERBOARD_CACHE)
def _storm_leaderboard(storm_id, limit):
    return _repository().storm_leaderboard(storm_id, limit=limit)


@cached_query(LEADERBOARD_CACHE)
def _global_leaderboard(limit):
    return _repository().global_leaderboard(limit=limit)


@cached_query(BADGE_DEFINITION_CACHE, timeout=3600)
def _badge_definitions():
    return [definition.to_dict() for definition in _repository().badge_definitions()]


def _limit_arg():
    limit = request.args.get("limit", type=int)
    if limit is not None and limit <= 0:
        return None
    return limit


@bp.route("/predictions", methods=["POST"])
def submit_prediction():
    """Submit a forecast for the currently open checkpoint"""
    storm, checkpoint, _ = _game_context()
    data = request.get_json(silent=True)

    prediction, message = Prediction.create_prediction(data, storm, checkpoint)
    if prediction is None:
        current_app.logger.info(f"Prediction rejected: {message}")
        return jsonify({"error": message}), 400

    return (
        jsonify({"success": True, "message": message, "prediction": prediction.to_dict()}),
        201,
    )


@bp.route("/predictions/user/<username>")
def user_predictions(username):
    """Get all predictions submitted by a user"""
    predictions = Prediction.get_user_predictions(username)
    return jsonify(
        {
            "username": username,
            "count": len(predictions),
            "predictions": [p.to_dict() for p in predictions],
        }
    )


@bp.route("/game/state")
def game_state():
    """Get the current storm, the track revealed so far and the open checkpoint"""
    storm, checkpoint, now = _game_context()
    if storm is None:
        return jsonify({"error": "No storms scheduled"}), 503

    revealed = game_clock.revealed_checkpoints(storm, now)
    track = storm.track(revealed)
    return jsonify(
        {
            "storm": storm.to_dict(revealed=revealed),
            "active_checkpoint": checkpoint,
            "hours_until_next_checkpoint": game_clock.hours_until_next_checkpoint(
                storm, now
            ),
            "current_position": track[-1] if track else None,
            "track": track,
            "progress": game_clock.game_progress(storm, now),
            "server_time": now.isoformat(),
        }
    )


@bp.route("/storms")
def storms():
    """Get the loaded storm schedule"""
    return jsonify(
        {"storms": [storm.to_dict(include_checkpoints=False) for storm in _schedule()]}
    )


@bp.route("/storms/<storm_id>")
def storm_detail(storm_id):
    """
    Get one storm with the checkpoints that have closed so far.

    With rotation enabled only the current storm has a game window; the
    others reveal nothing beyond their starting position.
    """
    storm = _find_storm(storm_id)
    if storm is None:
        return jsonify({"error": f"Unknown storm '{storm_id}'"}), 404

    current, _, now = _game_context()
    if current is not None and current.id == storm_id:
        window = current
    elif game_clock.rotation_from_config(current_app.config) is None:
        window = storm
    else:
        window = None

    revealed = game_clock.revealed_checkpoints(window, now)
    return jsonify(
        {
            "storm": (window or storm).to_dict(revealed=revealed),
            "track": storm.track(revealed),
            "progress": game_clock.game_progress(window, now),
            "current": current is not None and current.id == storm_id,
        }
    )


@bp.route("/leaderboard/<storm_id>")
def storm_leaderboard(storm_id):
    """Users ranked by summed score for one storm"""
    return jsonify(
        {"storm_id": storm_id, "leaderboard": _storm_leaderboard(storm_id, _limit_arg())}
    )


@bp.route("/leaderboard/all-time/global")
def global_leaderboard():
    """Users ranked by summed score across all storms"""
    return jsonify({"leaderboard": _global_leaderboard(_limit_arg())})


@bp.route("/user/<username>/stats")
def user_stats(username):
    stats = _repository().user_stats(username)
    return jsonify({"username": username, "stats": stats.to_dict()})


@bp.route("/user/<username>/badges")
def user_badges(username):
    badges = _repository().user_badges(username)
    return jsonify(
        {
            "username": username,
            "count": len(badges),
            "badges": [badge.to_dict() for badge in badges],
        }
    )


@bp.route("/user/<username>/badge-progress")
def user_badge_progress(username):
    """Progress toward every badge in the catalog"""
    repository = _repository()
    stats = repository.user_stats(username)
    earned = repository.earned_badge_ids(username)
    progress = badge_progress(stats, earned, _badge_definitions())
    return jsonify(
        {
            "username": username,
            "earned": len(earned),
            "total": len(progress),
            "badges": progress,
        }
    )


@bp.route("/badges/definitions")
def badge_definitions():
    return jsonify({"badges": _badge_definitions()})


@bp.route("/admin/score/<storm_id>/<checkpoint>", methods=["POST"])
def admin_score(storm_id, checkpoint):
    """
    Manually run a scoring pass for one checkpoint.

    The optional JSON body {"actual": {lat, lon, windSpeed, pressure}}
    overrides the values recorded in the schedule.
    """
    storm = _find_storm(storm_id)
    if storm is None:
        return jsonify({"error": f"Unknown storm '{storm_id}'"}), 404

    current, open_checkpoint, _ = _game_context()
    if current is not None and current.id == storm_id and open_checkpoint == checkpoint:
        return jsonify({"error": f"Checkpoint '{checkpoint}' is still open"}), 409

    data = request.get_json(silent=True) or {}
    override = data.get("actual") if isinstance(data, dict) else None
    if override is not None:
        if not isinstance(override, dict):
            return jsonify({"error": INVALID_ACTUAL_MESSAGE}), 400
        actual = {attr: override.get(key) for key, attr in ACTUAL_FIELDS.items()}
    else:
        actual = actual_for_checkpoint(storm, checkpoint)
        if actual is None:
            return (
                jsonify({"error": f"Storm '{storm_id}' has no checkpoint '{checkpoint}'"}),
                400,
            )

    repository = _repository()
    service = ScoringService(repository, BadgeEvaluator(repository))
    try:
        result = service.score_checkpoint(storm_id, checkpoint, actual)
    except ValueError as e:
        current_app.logger.info(f"Manual scoring of {storm_id}/{checkpoint} rejected: {e}")
        return jsonify({"error": INVALID_ACTUAL_MESSAGE}), 400

    current_app.logger.info(
        f"Manual scoring of {storm_id}/{checkpoint}: {result.scored} scored"
    )
    return jsonify({"success": True, "result": result.to_dict()})


@bp.route("/admin/scheduler")
def scheduler_status():
    scheduler = current_app.extensions.get("scheduler")
    if scheduler is None:
        return jsonify({"is_running": False, "jobs": [], "stats": None})
    return jsonify(scheduler.get_status())


@bp.route("/health")
def health():
    """Liveness/readiness check"""
    schedule_error = current_app.extensions.get("storm_schedule_error")
    payload = {
        "server_time": timezone_utils.get_utc_time().isoformat(),
        "schedule": {
            "storms": len(_schedule()),
            "error": schedule_error,
        },
        "cache": CacheManager.get_cache_stats(),
    }

    try:
        db.session.execute(text("SELECT 1"))
        payload["counts"] = _repository().counts()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Health check database failure: {e}")
        payload.update({"status": "unhealthy", "database": "disconnected"})
        return jsonify(payload), 503

    payload["database"] = "connected"
    payload["status"] = "degraded" if schedule_error or not _schedule() else "healthy"
    return jsonify(payload)
