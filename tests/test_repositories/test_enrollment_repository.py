"""
选课记录Repository数据库操作测试
"""

import pytest
from datetime import timedelta

from sqlalchemy import select, func

from app.models.database.enrollment_db import EnrollmentDB
from app.repositories.enrollment_repository import EnrollmentRepository
from app.utils.datetime_utils import utc_now, ensure_utc


@pytest.mark.asyncio
class TestEnrollmentRepository:
    """选课记录Repository数据库操作测试类"""

    async def test_upsert_creates_rows(self, db_session):
        repo = EnrollmentRepository(db_session)
        expires_at = utc_now() + timedelta(days=365)

        course_ids = await repo.upsert_enrollments("student_001", ["C1", "C2"], expires_at)
        await db_session.commit()

        assert course_ids == ["C1", "C2"]
        enrollments = await repo.get_student_enrollments("student_001")
        assert sorted(e.course_id for e in enrollments) == ["C1", "C2"]
        assert all(e.is_active for e in enrollments)

    async def test_upsert_is_idempotent(self, db_session):
        """重复upsert同一 (student_id, course_id) 只保留一条记录并重新激活"""
        repo = EnrollmentRepository(db_session)
        first_expiry = utc_now() + timedelta(days=365)
        await repo.upsert_enrollments("student_001", ["C1"], first_expiry)
        await db_session.commit()

        enrollment = await repo.get_enrollment("student_001", "C1")
        enrollment.is_active = False
        await db_session.commit()

        second_expiry = first_expiry + timedelta(days=1)
        await repo.upsert_enrollments("student_001", ["C1"], second_expiry)
        await db_session.commit()

        count = await db_session.execute(
            select(func.count()).select_from(EnrollmentDB).where(EnrollmentDB.student_id == "student_001")
        )
        assert count.scalar_one() == 1

        enrollment = await repo.get_enrollment("student_001", "C1")
        assert enrollment.is_active is True
        assert abs(ensure_utc(enrollment.expires_at) - second_expiry) < timedelta(seconds=1)

    async def test_upsert_deduplicates_input(self, db_session):
        repo = EnrollmentRepository(db_session)

        course_ids = await repo.upsert_enrollments("student_001", ["C1", "C1", "C2"], utc_now())
        await db_session.commit()

        assert course_ids == ["C1", "C2"]
        assert len(await repo.get_student_enrollments("student_001")) == 2

    async def test_upsert_empty(self, db_session):
        repo = EnrollmentRepository(db_session)
        assert await repo.upsert_enrollments("student_001", [], utc_now()) == []

    async def test_get_missing_enrollment(self, db_session):
        repo = EnrollmentRepository(db_session)
        assert await repo.get_enrollment("student_001", "C404") is None
