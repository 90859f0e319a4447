"""
EntomoGuide Backend: Catalog SQLAlchemy Models
===============================================

What:  ORM models for `categories`, `insects` and `insect_images`.
Who:   CatalogService (categories/insects) and AttachmentManager (images).

Relationships:
    Category 1 ── * Insect          (insects.category_id ON DELETE SET NULL)
    Insect   1 ── * InsectImage     (insect_images.insect_id ON DELETE CASCADE)

    At most `max_images_per_insect` (3) images per insect. The limit is
    enforced by AttachmentManager when writing, not by a database trigger.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from entomoguide.database import Base


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name='{self.name}')>"


class Insect(Base):
    """
    A catalog entry.

    `images` is loaded with a separate SELECT ... IN query whenever insects
    are fetched, so listing N insects costs two queries, not N + 1.
    """

    __tablename__ = "insects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    common_name: Mapped[str] = mapped_column(String(150), nullable=False)
    scientific_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)

    category_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    habitat: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    behavior: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # passive_deletes: the database cascade removes image rows; the ORM must
    # not try to null out insect_id first
    images: Mapped[List["InsectImage"]] = relationship(
        back_populates="insect",
        lazy="selectin",
        passive_deletes=True,
        order_by="InsectImage.id",
    )

    __table_args__ = (Index("idx_insects_category_id", "category_id"),)

    def __repr__(self) -> str:
        return f"<Insect(id={self.id}, common_name='{self.common_name}')>"


class InsectImage(Base):
    __tablename__ = "insect_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    insect_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("insects.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Storage locator: /uploads/<timestamp>.<ext>
    image_url: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    caption: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    insect: Mapped["Insect"] = relationship(back_populates="images", lazy="raise")

    # Every count-and-insert on attach filters by insect_id
    __table_args__ = (Index("idx_insect_images_insect_id", "insect_id"),)

    def __repr__(self) -> str:
        return f"<InsectImage(id={self.id}, insect_id={self.insect_id}, url='{self.image_url}')>"
