"""
Hurricane Game Scoring Scheduler Service

Polls the game clock on a fixed interval using APScheduler and runs a scoring
pass for every checkpoint whose closing boundary was crossed since the last
poll. Boundaries crossed while the process was down are not caught up here;
the manual scoring endpoint and `manage.py score-missed` cover that.
"""

import atexit
import logging
import threading
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from hurricane_game import db
from hurricane_game.services.badge_service import BadgeEvaluator
from hurricane_game.services.repository import GameRepository
from hurricane_game.services.scoring_service import ScoringService
from hurricane_game.utils import game_clock, timezone_utils
from hurricane_game.utils.performance import PerformanceMonitor

logger = logging.getLogger(__name__)

SCORING_JOB_ID = "score_closed_checkpoints"


class SchedulerService:
    """Manages the background scoring job"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.interval = timedelta(seconds=60)
        self.rotation = None
        self._tick_lock = threading.Lock()
        self._last_window_end = None
        self.tick_stats = self._empty_stats()

        if app:
            self.init_app(app)

    @staticmethod
    def _empty_stats():
        return {
            "last_tick": None,
            "total_ticks": 0,
            "successful_ticks": 0,
            "failed_ticks": 0,
            "skipped_ticks": 0,
            "checkpoints_scored": 0,
            "predictions_scored": 0,
            "last_error": None,
        }

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.interval = timedelta(seconds=app.config.get("SCORING_POLL_SECONDS", 60))
        self.rotation = game_clock.rotation_from_config(app.config)
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        app.extensions["scheduler"] = self

        # Register shutdown
        atexit.register(self.shutdown)

        # Start scheduler if enabled
        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        self.scheduler.remove_all_jobs()
        self._add_core_jobs()
        self.scheduler.start()
        self.is_running = True

        logger.info(
            f"Scheduler started (poll every {int(self.interval.total_seconds())}s)"
        )

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduler stopped")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        """Add core scheduled jobs"""
        self.scheduler.add_job(
            func=self.tick,
            trigger=IntervalTrigger(seconds=int(self.interval.total_seconds())),
            id=SCORING_JOB_ID,
            name="Score Closed Checkpoints",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )

    def _window_start(self, now):
        # Continue from the previous poll if it was recent, so jitter in the
        # trigger neither skips nor repeats a boundary
        last = self._last_window_end
        if last is not None and now - 2 * self.interval <= last < now:
            return last
        return now - self.interval

    def tick(self, now=None):
        """
        Run one poll: score every checkpoint that closed since the last poll.

        Overlapping calls are skipped rather than queued.

        Returns:
            list of ScoringResult, or None when the tick was skipped
        """
        if not self._tick_lock.acquire(blocking=False):
            self.tick_stats["skipped_ticks"] += 1
            logger.warning("Previous scoring tick still running; skipping")
            return None

        try:
            with self.app.app_context():
                return self._run_tick(now)
        finally:
            self._tick_lock.release()

    def _run_tick(self, now):
        now = now or timezone_utils.get_utc_time()
        window_start = self._window_start(now)
        schedule = self.app.extensions.get("storm_schedule", ())

        results = []
        try:
            with PerformanceMonitor("scheduler tick"):
                service = self._scoring_service()
                for storm in game_clock.scoring_candidates(schedule, now, self.rotation):
                    for label in game_clock.closed_checkpoints(storm, window_start, now):
                        logger.info(f"Checkpoint {storm.id}/{label} closed; scoring")
                        results.append(service.score_storm_checkpoint(storm, label))
        except SQLAlchemyError as e:
            db.session.rollback()
            self._update_stats(False, error=e)
            logger.error(f"Error in scoring tick: {e}", exc_info=True)
            return results

        self._last_window_end = now
        self._update_stats(True, results)
        return results

    def _scoring_service(self):
        repository = GameRepository(db.session)
        return ScoringService(repository, BadgeEvaluator(repository))

    def _update_stats(self, success, results=(), error=None):
        """Update tick statistics"""
        self.tick_stats["last_tick"] = timezone_utils.get_utc_time()
        self.tick_stats["total_ticks"] += 1

        if success:
            self.tick_stats["successful_ticks"] += 1
            self.tick_stats["checkpoints_scored"] += len(results)
            self.tick_stats["predictions_scored"] += sum(r.scored for r in results)
            self.tick_stats["last_error"] = None
        else:
            self.tick_stats["failed_ticks"] += 1
            self.tick_stats["last_error"] = str(error)

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler and self.is_running:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.tick_stats)
        if stats["last_tick"] is not None:
            stats["last_tick"] = stats["last_tick"].isoformat()

        return {
            "is_running": self.is_running,
            "poll_seconds": int(self.interval.total_seconds()),
            "rotation": (
                None
                if self.rotation is None
                else {
                    "epoch": self.rotation[0].isoformat(),
                    "period_hours": self.rotation[1].total_seconds() / 3600,
                }
            ),
            "jobs": jobs,
            "stats": stats,
        }

    def force_tick(self):
        """Manually trigger a poll"""
        results = self.tick()
        if results is None:
            return False, "A scoring tick is already running"
        return True, f"Manual tick completed ({len(results)} checkpoints scored)"
