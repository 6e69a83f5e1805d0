"""
选课记录数据库模型
"""

from sqlalchemy import Column, String, Boolean, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class EnrollmentDB(Base):
    """选课记录数据库表"""

    __tablename__ = "enrollments"

    id = Column(String(50), primary_key=True, comment="选课记录ID")
    student_id = Column(String(64), nullable=False, index=True, comment="学员ID")
    course_id = Column(String(64), nullable=False, index=True, comment="课程ID")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否有效")
    expires_at = Column(DateTime(timezone=True), comment="过期时间")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    # (student_id, course_id) 唯一，供 upsert 冲突判断
    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_enrollments_student_course"),
        {'comment': '选课记录表'}
    )
