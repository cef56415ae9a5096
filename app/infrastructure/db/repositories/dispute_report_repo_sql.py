from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.dispute_report_repo import DisputeReportRepo
from app.domain.entities.dispute_report import DisputeReport, ReportStatus
from app.domain.errors import ReportNotFoundError
from app.domain.schedule import as_utc
from app.infrastructure.db.tables import dispute_reports


class DisputeReportRepoSQL(DisputeReportRepo):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, report: DisputeReport) -> DisputeReport:
        result = await self._session.execute(
            insert(dispute_reports).values(
                booking_id=report.booking_id,
                experience_id=report.experience_id,
                host_id=report.host_id,
                reporter_id=report.reporter_id,
                reason=report.reason,
                comment=report.comment,
                status=report.status.value,
                deadline_at=report.deadline_at,
                created_at=report.created_at,
            )
        )
        report.id = result.inserted_primary_key[0]
        return report

    async def get(self, report_id: int) -> DisputeReport | None:
        stmt = select(dispute_reports).where(dispute_reports.c.id == report_id)
        result = await self._session.execute(stmt)
        row = result.mappings().first()
        return self._map_report(row) if row else None

    async def get_open_by_booking(self, booking_id: int) -> DisputeReport | None:
        stmt = (
            select(dispute_reports)
            .where(
                dispute_reports.c.booking_id == booking_id,
                dispute_reports.c.status == ReportStatus.OPEN.value,
            )
            .order_by(dispute_reports.c.id.desc())
        )
        result = await self._session.execute(stmt)
        row = result.mappings().first()
        return self._map_report(row) if row else None

    async def save(self, report: DisputeReport) -> DisputeReport:
        stmt = (
            update(dispute_reports)
            .where(dispute_reports.c.id == report.id)
            .values(
                status=report.status.value,
                handled_at=report.handled_at,
                handled_by=report.handled_by,
                action_taken=report.action_taken,
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise ReportNotFoundError(report.id)
        return report

    def _map_report(self, row) -> DisputeReport:
        return DisputeReport(
            id=row["id"],
            booking_id=row["booking_id"],
            experience_id=row["experience_id"],
            host_id=row["host_id"],
            reporter_id=row["reporter_id"],
            reason=row["reason"],
            comment=row.get("comment"),
            status=ReportStatus(row["status"]),
            deadline_at=as_utc(row.get("deadline_at")),
            handled_at=as_utc(row.get("handled_at")),
            handled_by=row.get("handled_by"),
            action_taken=row.get("action_taken"),
            created_at=as_utc(row.get("created_at")),
        )
