"""
选课权限查询服务
"""

import logging
from datetime import datetime
from typing import Optional

from app.core.database import run_store_operation
from app.models.payment import EnrollmentStatus
from app.repositories.enrollment_repository import EnrollmentRepository
from app.utils.datetime_utils import utc_now, ensure_utc

logger = logging.getLogger(__name__)


class EnrollmentService:
    """选课权限查询"""

    def __init__(self, enrollment_repo: EnrollmentRepository):
        self.enrollment_repo = enrollment_repo

    async def check_enrollment(
        self,
        student_id: str,
        course_id: str,
        current_time: Optional[datetime] = None
    ) -> EnrollmentStatus:
        """学员是否拥有课程的有效学习权限：记录启用且未过期"""
        now = ensure_utc(current_time) or utc_now()
        db_enrollment = await run_store_operation(
            self.enrollment_repo.get_enrollment(student_id, course_id)
        )
        if not db_enrollment:
            return EnrollmentStatus(student_id=student_id, course_id=course_id, enrolled=False)

        expires_at = ensure_utc(db_enrollment.expires_at)
        enrolled = bool(db_enrollment.is_active) and (expires_at is None or expires_at > now)
        return EnrollmentStatus(
            student_id=student_id,
            course_id=course_id,
            enrolled=enrolled,
            is_active=bool(db_enrollment.is_active),
            expires_at=expires_at
        )
