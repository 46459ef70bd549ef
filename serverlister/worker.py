"""RQ worker entry points that execute queued jobs through the dispatcher."""

from __future__ import annotations

import argparse
import sys
from typing import Any, Mapping, Sequence
from uuid import uuid4

from rq import SimpleWorker, get_current_job
from sqlalchemy.orm import Session, sessionmaker

from serverlister.config import Settings, settings
from serverlister.db import create_db_engine, create_session_factory, init_db
from serverlister.jobs.dispatcher import JobDispatcher
from serverlister.jobs.handlers import (
    EmailJobHandler,
    NotificationJobHandler,
    ServerScanJobHandler,
)
from serverlister.logging import configure_logging, get_logger, job_context, reset_context
from serverlister.notify.adapters import EmailSMTPAdapter
from serverlister.notify.bridge import DeliveryBridge, HTTPDeliveryBridge
from serverlister.queue import JobQueue, QueueConnectionError
from serverlister.services.scan_ingest import ScanIngestionService


logger = get_logger(__name__)

_dispatcher: JobDispatcher | None = None


def build_dispatcher(
    config: Settings,
    *,
    session_factory: sessionmaker[Session],
    queue: JobQueue | None,
    bridge: DeliveryBridge | None = None,
    email_adapter: EmailSMTPAdapter | None = None,
) -> JobDispatcher:
    """Wire the three job handlers with their collaborators."""

    bridge = bridge or HTTPDeliveryBridge(
        config.api_url,
        token=config.internal_api_token,
        timeout=config.delivery_timeout,
    )
    email_adapter = email_adapter or EmailSMTPAdapter(
        host=config.smtp_host,
        port=config.smtp_port,
        username=config.smtp_username or None,
        password=config.smtp_password or None,
        from_email=config.smtp_from_email or config.smtp_username or None,
        from_name=config.smtp_from_name,
        use_tls=config.smtp_use_tls,
        templates_dir=config.email_templates_dir,
    )
    notification = NotificationJobHandler(
        session_factory, bridge=bridge, email_queue=queue
    )
    server_scan = ServerScanJobHandler(ScanIngestionService(session_factory))
    email = EmailJobHandler(email_adapter)
    return JobDispatcher(
        {
            notification.job_name: notification,
            server_scan.job_name: server_scan,
            email.job_name: email,
        }
    )


def install_dispatcher(dispatcher: JobDispatcher | None) -> None:
    """Make *dispatcher* the one used by :func:`process_job` in this process."""

    global _dispatcher
    _dispatcher = dispatcher


def get_dispatcher() -> JobDispatcher:
    if _dispatcher is None:
        raise RuntimeError(
            "No job dispatcher installed; start workers through serverlister.worker.main"
        )
    return _dispatcher


def process_job(job_name: str, payload: Mapping[str, Any]) -> Any:
    """Entry point executed by RQ workers for every job on the queue."""

    current = get_current_job()
    job_id: str
    queue_name: str | None = None
    attempt: int | None = None
    if current is not None:
        job_id = current.id
        queue_name = getattr(current, "origin", None)
        attempt = int(current.meta.get("attempts", 0)) + 1
        current.meta["attempts"] = attempt
        current.save_meta()
    else:
        job_id = f"inline-{uuid4().hex}"

    with job_context(
        job_id=job_id, job_name=job_name, queue_name=queue_name, attempt=attempt
    ):
        return get_dispatcher().dispatch(job_name, payload)


def main(argv: Sequence[str] | None = None) -> int:
    """Run a worker consuming the configured queue until it is told to stop."""

    parser = argparse.ArgumentParser(description="Process queued serverlister jobs.")
    parser.add_argument(
        "--burst",
        action="store_true",
        help="Exit once the queue is empty instead of waiting for new jobs.",
    )
    args = parser.parse_args(argv)

    configure_logging()
    reset_context()

    try:
        queue = JobQueue.connect(settings)
    except QueueConnectionError as exc:
        logger.error("worker.startup.broker_unreachable", error=str(exc))
        return 1

    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)
    bridge = HTTPDeliveryBridge(
        settings.api_url,
        token=settings.internal_api_token,
        timeout=settings.delivery_timeout,
    )
    install_dispatcher(
        build_dispatcher(
            settings, session_factory=session_factory, queue=queue, bridge=bridge
        )
    )

    # SIGTERM/SIGINT trigger RQ's warm shutdown: the current job finishes first.
    worker = SimpleWorker([queue.rq_queue], connection=queue.connection)
    logger.info(
        "worker.startup",
        queue_name=queue.name,
        worker_name=worker.name,
        burst=args.burst,
        environment=settings.environment,
    )
    try:
        worker.work(burst=args.burst, with_scheduler=True)
    finally:
        install_dispatcher(None)
        bridge.close()
        queue.close()
        engine.dispose()
        logger.info("worker.shutdown", worker_name=worker.name)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
