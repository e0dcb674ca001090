"""
Report Repository
Lab Report Analyzer

Owner-scoped persistence for LabReport records.
"""

import logging
from typing import Optional, Sequence, Tuple

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.report import LabReport
from app.schemas.report import ReportStatus

logger = logging.getLogger(__name__)


class ReportRepository:
    """Keyed lookups, listing, creation and removal of reports."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, report: LabReport) -> LabReport:
        self.db.add(report)
        await self.save(report)
        logger.info("Created report %s for '%s'", report.id, report.file_name)
        return report

    async def save(self, report: LabReport) -> LabReport:
        """Commit the report's current state so it survives the request."""
        await self.db.commit()
        await self.db.refresh(report)
        return report

    async def reload(self, report: LabReport) -> LabReport:
        """Drop any uncommitted work and re-read the report's committed state."""
        await self.db.rollback()
        await self.db.refresh(report)
        return report

    async def get(self, owner_id: str, report_id: str) -> Optional[LabReport]:
        result = await self.db.execute(
            select(LabReport).where(
                LabReport.id == report_id,
                LabReport.owner_id == owner_id,
            )
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        owner_id: str,
        page: int = 1,
        page_size: int = 10,
        status: Optional[ReportStatus] = None,
    ) -> Tuple[Sequence[LabReport], int]:
        filters = [LabReport.owner_id == owner_id]
        if status is not None:
            filters.append(LabReport.status == status.value)

        count_result = await self.db.execute(
            select(func.count(LabReport.id)).where(*filters)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(LabReport)
            .where(*filters)
            .order_by(desc(LabReport.created_at))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return result.scalars().all(), total

    async def delete(self, owner_id: str, report_id: str) -> bool:
        report = await self.get(owner_id, report_id)
        if not report:
            return False
        await self.db.delete(report)
        await self.db.commit()
        logger.info("Deleted report %s", report_id)
        return True
