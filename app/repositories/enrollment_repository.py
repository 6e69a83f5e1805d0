"""
选课记录数据库操作层
"""

from typing import List, Optional
from datetime import datetime
import uuid

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import dialect_insert
from app.models.database.enrollment_db import EnrollmentDB
from app.utils.datetime_utils import utc_now


class EnrollmentRepository:
    """选课记录数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_enrollment(self, student_id: str, course_id: str) -> Optional[EnrollmentDB]:
        """获取学员某门课程的选课记录"""
        result = await self.db.execute(
            select(EnrollmentDB)
            .where(
                and_(
                    EnrollmentDB.student_id == student_id,
                    EnrollmentDB.course_id == course_id
                )
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_student_enrollments(self, student_id: str) -> List[EnrollmentDB]:
        """获取学员全部选课记录"""
        result = await self.db.execute(
            select(EnrollmentDB)
            .where(EnrollmentDB.student_id == student_id)
            .order_by(EnrollmentDB.created_at)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def upsert_enrollments(
        self,
        student_id: str,
        course_ids: List[str],
        expires_at: datetime
    ) -> List[str]:
        """
        批量创建或激活选课记录

        以 (student_id, course_id) 为冲突键，重复调用不会产生重复记录，
        已存在的记录被重新激活并刷新过期时间。返回实际处理的课程ID。
        """
        # 同一条语句内冲突键不能重复出现
        unique_course_ids = list(dict.fromkeys(course_ids))
        if not unique_course_ids:
            return []

        now = utc_now()
        rows = [
            {
                "id": str(uuid.uuid4()),
                "student_id": student_id,
                "course_id": course_id,
                "is_active": True,
                "expires_at": expires_at,
                "created_at": now,
                "updated_at": now
            }
            for course_id in unique_course_ids
        ]

        stmt = dialect_insert(self.db, EnrollmentDB.__table__).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["student_id", "course_id"],
            set_={
                "is_active": stmt.excluded.is_active,
                "expires_at": stmt.excluded.expires_at,
                "updated_at": stmt.excluded.updated_at
            }
        )
        await self.db.execute(stmt)
        return unique_course_ids
