from sqlalchemy import Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gradebook.db.base_class import Base


class Gradebook(Base):
    __tablename__ = "gradebooks"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    # one gradebook per course; courses live in the host application
    course_id: Mapped[int] = mapped_column(unique=True, index=True, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    categories = relationship(
        "GradebookCategory", back_populates="gradebook", cascade="all, delete-orphan"
    )

    items = relationship(
        "GradebookItem", back_populates="gradebook", cascade="all, delete-orphan"
    )
