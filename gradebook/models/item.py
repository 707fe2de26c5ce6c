from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from gradebook.core.config import DEFAULT_MAX_GRADE, DEFAULT_MIN_GRADE
from gradebook.db.base_class import Base


class GradebookItem(Base):
    __tablename__ = "gradebook_items"

    id = Column(Integer, primary_key=True, index=True)
    gradebook_id = Column(Integer, ForeignKey("gradebooks.id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL category means the item sits at gradebook root
    category_id = Column(Integer, ForeignKey("gradebook_categories.id"), nullable=True, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    max_grade = Column(Float, nullable=False, default=DEFAULT_MAX_GRADE)
    min_grade = Column(Float, nullable=False, default=DEFAULT_MIN_GRADE)
    weight = Column(Float, nullable=True)
    extra_credit = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    # Activity linkage (NULL for manual items whose score is entered directly)
    activity_module_type = Column(String(50), nullable=True)
    activity_module_name = Column(String(255), nullable=True)

    gradebook = relationship("Gradebook", back_populates="items")
    category = relationship("GradebookCategory", back_populates="items")

    user_grades = relationship("UserGrade", back_populates="item", cascade="all, delete-orphan")
