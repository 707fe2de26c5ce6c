from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gradebook.db.base_class import Base


class GradebookCategory(Base):
    __tablename__ = "gradebook_categories"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    gradebook_id: Mapped[int] = mapped_column(
        ForeignKey("gradebooks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # NULL parent means the category sits at gradebook root
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("gradebook_categories.id"), nullable=True, index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    extra_credit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    gradebook = relationship("Gradebook", back_populates="categories")

    parent = relationship("GradebookCategory", remote_side="GradebookCategory.id", back_populates="subcategories")
    # children are never re-parented by the ORM when a category is deleted
    subcategories = relationship(
        "GradebookCategory",
        back_populates="parent",
        order_by="GradebookCategory.sort_order",
        passive_deletes="all",
    )
    items = relationship(
        "GradebookItem",
        back_populates="category",
        order_by="GradebookItem.sort_order",
        passive_deletes="all",
    )
