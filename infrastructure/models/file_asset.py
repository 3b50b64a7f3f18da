"""File asset database model definitions."""
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    text,
)
from sqlalchemy.sql import func

from .base import Base


class FileAssetModel(Base):
    """ORM mapping for file_assets table."""

    __tablename__ = "file_assets"
    __table_args__ = (
        Index("ix_file_assets_created_at", "created_at"),
        Index("ix_file_assets_creator_created", "creator_id", "created_at"),
        {
            "comment": "文件资源表，记录创作者上传的文件及售卖条件",
        },
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="主键ID",
    )
    creator_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="创作者用户ID",
    )
    key = Column(
        String(512),
        nullable=False,
        comment="对象存储中的Key（路径）",
    )
    size = Column(
        BigInteger,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="文件大小（字节）",
    )
    content_type = Column(
        String(100),
        nullable=True,
        comment="MIME类型",
    )
    original_filename = Column(
        String(255),
        nullable=True,
        comment="原始文件名",
    )
    price = Column(
        Numeric(precision=15, scale=2),
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="售价，0 表示免费",
    )
    is_public = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="是否公开上架",
    )
    extra_metadata = Column(
        "metadata",
        JSON,
        nullable=True,
        default=dict,
        comment="扩展元数据（JSON）",
    )
    status = Column(
        String(20),
        nullable=False,
        default="ready",
        server_default=text("'ready'"),
        comment="文件状态：processing/ready/deleted",
    )
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        comment="创建时间",
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        onupdate=func.now(),
        comment="更新时间",
    )

    def __repr__(self) -> str:
        return (
            "<FileAssetModel(id={id}, key='{key}', price={price}, status='{status}')>"
        ).format(id=self.id, key=self.key, price=self.price, status=self.status)
