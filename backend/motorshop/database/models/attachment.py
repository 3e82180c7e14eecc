"""
Attachment metadata for files uploaded against an order.

Only metadata lives here; the bytes sit in external storage addressed by
``file_path``.
"""

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from motorshop.database.base import BaseModel


class Attachment(BaseModel):
    """
    Uploaded file.

    History rows for uploads are paired with attachments by file name and
    upload time only; see ``find_related_attachments``.
    """

    __tablename__ = "attachments"

    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="Order the file was uploaded to",
    )

    file_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Original file name",
    )

    file_path: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        comment="Location in external storage",
    )

    mime_type: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="MIME type reported at upload",
    )

    file_size: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        comment="Size in bytes",
    )

    uploaded_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="User who uploaded the file",
    )

    __table_args__ = (
        Index("ix_attachments_order_file", "order_id", "file_name"),
    )
