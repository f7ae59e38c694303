"""Application entry point — runs scheduler + web server in a single process."""

from __future__ import annotations

import json
import logging
import sys
import threading
from contextlib import asynccontextmanager

import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from devdash.config import Config, load_config
from devdash.jobs import run_cleanup, run_refresh_all, seed_sources
from devdash.storage import init_db
from devdash.web.app import create_app

logger = logging.getLogger("devdash")


def _setup_logging(log_level: str, log_format: str) -> None:
    """Configure root logger based on config."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps(
                {
                    "time": "%(asctime)s",
                    "level": "%(levelname)s",
                    "logger": "%(name)s",
                    "thread": "%(threadName)s",
                    "message": "%(message)s",
                }
            )
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s (%(threadName)s): %(message)s"
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def _build_scheduler(config: Config) -> BackgroundScheduler:
    """Create a BackgroundScheduler with the refresh and cleanup jobs."""
    scheduler = BackgroundScheduler()

    scheduler.add_job(
        run_refresh_all,
        trigger=IntervalTrigger(minutes=config.fetch_interval_minutes),
        args=[config],
        id="refresh",
        name="Refresh all sources",
        max_instances=1,
        coalesce=True,
    )

    cleanup_cron = config.cleanup_schedule_cron.split()
    scheduler.add_job(
        run_cleanup,
        trigger=CronTrigger(
            minute=cleanup_cron[0],
            hour=cleanup_cron[1],
            day=cleanup_cron[2],
            month=cleanup_cron[3],
            day_of_week=cleanup_cron[4],
        ),
        args=[config],
        id="cleanup",
        name="Old post cleanup",
    )

    return scheduler


def main() -> None:
    """Load config, set up logging, and start scheduler + web server."""
    config = load_config()

    _setup_logging(config.log_level, config.log_format)

    logger.info(
        "DevDash starting (env=%s, db=%s, interval=%dm)",
        config.app_env,
        config.database_path,
        config.fetch_interval_minutes,
    )

    init_db(config.database_path)
    seed_sources(config)

    scheduler = _build_scheduler(config)

    def _initial_refresh():
        """Refresh once at startup in a background thread."""
        logger.info("Running initial refresh")
        try:
            run_refresh_all(config)
        except Exception:
            logger.exception("Initial refresh failed; scheduler will continue")

    @asynccontextmanager
    async def lifespan(app):
        logger.info("Scheduler starting")
        scheduler.start()
        # Refresh in background so the API is available immediately
        threading.Thread(target=_initial_refresh, daemon=True).start()
        yield
        logger.info("Scheduler shutting down")
        scheduler.shutdown(wait=False)

    app = create_app(config, lifespan=lifespan)

    uvicorn.run(app, host=config.web_host, port=config.web_port)


if __name__ == "__main__":
    main()
