"""
council.jobs.__main__ — Scheduled governance jobs
===================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Run one job and print its summary as JSON.

Intended for cron::

    python -m council.jobs analyze-all
    python -m council.jobs rotate-committees
    python -m council.jobs process-expulsions

Exit status is 1 when any item in the batch failed.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import timedelta

import click
from dotenv import load_dotenv

from council import __version__
from council.config import load_config
from council.database.engine import create_db_engine, init_db
from council.engine.results import BatchReport
from council.services import behavior_service, expulsion_service, rotation_service
from council.services.notification_service import PushDispatcher

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("council")


def _emit(payload: dict, failed: int = 0) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))
    if failed:
        raise SystemExit(1)


def _report_payload(report: BatchReport) -> dict:
    return {
        **report.summary(),
        "results": [
            {
                "item": r.item_id,
                "outcome": r.outcome.value,
                "label": r.label,
                "reason": r.reason,
                **r.data,
            }
            for r in report.results
        ],
    }


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="config.yaml", help="Path to config.yaml")
@click.pass_context
def main(ctx: click.Context, config_path: str):
    """Council — scheduled governance jobs."""
    load_dotenv()
    cfg = load_config(config_path)
    engine = create_db_engine()
    init_db(engine)
    logger.info("Config loaded — %s", cfg.service_name)
    ctx.obj = {"cfg": cfg, "engine": engine}


@main.command("analyze-all")
@click.pass_obj
def analyze_all(obj: dict):
    """Score every professional active in the last 24 hours."""
    report = behavior_service.analyze_recent_activity(obj["engine"])
    _emit(_report_payload(report), failed=len(report.failed))


@main.command()
@click.argument("professional_id", type=click.UUID)
@click.pass_obj
def analyze(obj: dict, professional_id: uuid.UUID):
    """Score one professional by id."""
    try:
        result = behavior_service.analyze_behavior(obj["engine"], professional_id)
    except behavior_service.ProfessionalNotFoundError:
        raise click.ClickException(f"Professional {professional_id} not found")
    _emit(result.to_dict())


@main.command("rotate-committees")
@click.pass_obj
def rotate_committees(obj: dict):
    """Staff chapters whose committee term ended, or that never had one."""
    report = rotation_service.rotate_committees(
        obj["engine"],
        rotation_period=timedelta(days=obj["cfg"].rotation_period_days),
    )
    _emit(_report_payload(report), failed=len(report.failed))


@main.command("process-expulsions")
@click.pass_obj
def process_expulsions(obj: dict):
    """Auto-expire overdue reviews, then remind silent committee members."""
    cfg = obj["cfg"]
    result = expulsion_service.process_expulsion_votes(
        obj["engine"],
        PushDispatcher.from_env(cfg.push_notification_url),
        reminder_after=timedelta(hours=cfg.reminder_after_hours),
    )
    payload = result.to_dict()
    payload["expirations"] = _report_payload(result.expirations)
    payload["reminders"] = _report_payload(result.reminders)
    _emit(payload, failed=len(payload["failures"]))


if __name__ == "__main__":
    main()
