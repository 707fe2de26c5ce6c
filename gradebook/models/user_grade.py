from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from gradebook.db.base_class import Base


class UserGrade(Base):
    __tablename__ = "user_grades"

    id = Column(Integer, primary_key=True, index=True)

    # enrollments live in the host application
    enrollment_id = Column(Integer, nullable=False, index=True)
    gradebook_item_id = Column(
        Integer, ForeignKey("gradebook_items.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # NULL until graded; ungraded is not the same as zero
    base_grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    graded_at = Column(DateTime, nullable=True)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("enrollment_id", "gradebook_item_id", name="uq_user_grade_enrollment_item"),
    )

    item = relationship("GradebookItem", back_populates="user_grades")
