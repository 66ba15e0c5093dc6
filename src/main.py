"""
Entrypoint for a single reconciliation run.

Intended to be invoked on a schedule (e.g. by a Kubernetes CronJob).
Exit codes: 0 on success, 1 if any rollout restart failed, 2 if the run
could not list nodes.
"""

import logging
import sys
from typing import Optional

import structlog

from . import __version__
from .config import Settings, settings as default_settings
from .k8s_client import ClusterClient, ClusterClientError, get_k8s_client
from .metrics import RunMetrics
from .reconciler import ReconciliationRun, RunSummary

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_RESTART_FAILED = 1
EXIT_FATAL = 2


def configure_logging(log_level: str = "info", json_logs: bool = True):
    """Route structlog through stdlib logging with timestamped output."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def run_once(
    k8s_client: Optional[ClusterClient] = None,
    cfg: Optional[Settings] = None,
    metrics: Optional[RunMetrics] = None,
) -> RunSummary:
    """Execute one reconciliation run with the given (or default) settings."""
    cfg = cfg or default_settings
    run = ReconciliationRun(
        k8s_client or get_k8s_client(cfg),
        annotation_key=cfg.annotation_key,
        annotation_value=cfg.annotation_value,
        dry_run=cfg.dry_run,
        metrics=metrics,
    )
    return run.execute()


def main(k8s_client: Optional[ClusterClient] = None, cfg: Optional[Settings] = None) -> int:
    cfg = cfg or default_settings
    configure_logging(cfg.log_level, cfg.log_json)
    logger.info(
        "Starting evict-to-rollout",
        version=__version__,
        annotation=f"{cfg.annotation_key}={cfg.annotation_value}",
        dry_run=cfg.dry_run,
    )

    metrics = RunMetrics()
    try:
        summary = run_once(k8s_client, cfg, metrics)
        code = EXIT_RESTART_FAILED if summary.has_failures else EXIT_OK
    except ClusterClientError as e:
        logger.error("Run aborted", error=str(e))
        code = EXIT_FATAL
    finally:
        if cfg.pushgateway_url:
            metrics.push(cfg.pushgateway_url, cfg.metrics_job_name)

    logger.info("Done", exit_code=code)
    return code


if __name__ == "__main__":
    sys.exit(main())
