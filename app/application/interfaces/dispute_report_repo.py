from app.domain.entities.dispute_report import DisputeReport


class DisputeReportRepo:
    async def add(self, report: DisputeReport) -> DisputeReport:
        raise NotImplementedError

    async def get(self, report_id: int) -> DisputeReport | None:
        raise NotImplementedError

    async def get_open_by_booking(self, booking_id: int) -> DisputeReport | None:
        raise NotImplementedError

    async def save(self, report: DisputeReport) -> DisputeReport:
        raise NotImplementedError
