"""
选课权限接口
"""

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_enrollment_service
from app.models.payment import EnrollmentStatus
from app.services.enrollment_service import EnrollmentService

router = APIRouter(prefix="/enrollments", tags=["选课"])


@router.get("/check", response_model=EnrollmentStatus)
async def check_enrollment(
    student_id: str = Query(..., min_length=1),
    course_id: str = Query(..., min_length=1),
    service: EnrollmentService = Depends(get_enrollment_service)
):
    """查询学员是否可以访问课程内容"""
    return await service.check_enrollment(student_id, course_id)
