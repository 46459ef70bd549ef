"""Upsert servers and their latest scan snapshot from scanning-agent reports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from serverlister.logging import get_logger
from serverlister.models import Server, ServerScan
from serverlister.schemas import ScanResult


AUTO_CREATED_DESCRIPTION = "Auto created by Server Scan"


@dataclass(slots=True)
class ScanIngestResult:
    """Outcome of ingesting one scan report."""

    server_id: int
    scan_id: int
    hostname: str
    created: bool


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class ScanIngestionService:
    """Store scan reports so that replaying one never duplicates rows.

    The server is looked up by hostname and inserted or updated; its previous
    scans are replaced by the new one inside the same transaction. The server
    row is locked for that transaction and ``server_scans.server_id`` is unique,
    so concurrent runs of the same report serialise or fail on the key.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        now_provider: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._session_factory = session_factory
        self._now = now_provider
        self._logger = get_logger(__name__)

    def ingest(self, scan: ScanResult) -> ScanIngestResult:
        try:
            return self._ingest_once(scan)
        except IntegrityError:
            # Another worker inserted the same hostname or snapshot first; the
            # second pass finds its rows and takes the update path.
            self._logger.warning(
                "scan.ingest.concurrent_insert", hostname=scan.host.hostname
            )
            return self._ingest_once(scan)

    def _ingest_once(self, scan: ScanResult) -> ScanIngestResult:
        host = scan.host
        with self._session_factory() as session:
            try:
                server = session.scalars(
                    select(Server)
                    .where(Server.hostname == host.hostname)
                    .with_for_update()
                ).one_or_none()
                created = server is None
                if created:
                    server = Server(
                        hostname=host.hostname,
                        description=AUTO_CREATED_DESCRIPTION,
                        onboarded=False,
                    )
                    session.add(server)
                server.ipv4 = _blank_to_none(host.ipv4)
                server.ipv6 = _blank_to_none(host.ipv6)
                server.mac_address = _blank_to_none(host.mac_address)
                server.cores = int(host.cores)
                server.ram = round(host.memory_gb)
                session.flush()

                session.execute(delete(ServerScan).where(ServerScan.server_id == server.id))
                snapshot = ServerScan(
                    server_id=server.id,
                    scan_date=self._now(),
                    scan_results=scan.to_document(),
                )
                session.add(snapshot)
                session.commit()
            except Exception:
                session.rollback()
                raise

            result = ScanIngestResult(
                server_id=server.id,
                scan_id=snapshot.id,
                hostname=server.hostname,
                created=created,
            )

        self._logger.info(
            "scan.ingest.upserted",
            hostname=result.hostname,
            server_id=result.server_id,
            created=result.created,
        )
        return result


__all__ = ["AUTO_CREATED_DESCRIPTION", "ScanIngestResult", "ScanIngestionService"]
