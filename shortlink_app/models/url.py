from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from shortlink_app.database.connection import Base

SHORT_CODE_CONSTRAINT = "uq_urls_short_code"
DEDUP_KEY_CONSTRAINT = "uq_urls_owner_url_live"


class URL(Base):
    """
    URL table, the source of truth for short code mappings.

    Uniqueness rules live here, not in application code:
    - short_code is unique across every row, tombstoned ones included,
      so a code is never handed out twice
    - (owner_id, original_url) is unique among rows that are not tombstoned
      (partial index), which makes concurrent creates for the same pair
      collide at insert time
    """
    __tablename__ = "urls"
    __table_args__ = (
        UniqueConstraint("short_code", name=SHORT_CODE_CONSTRAINT),
        Index(
            DEDUP_KEY_CONSTRAINT,
            "owner_id",
            "original_url",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("idx_urls_owner_created", "owner_id", "created_at"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    short_code = Column(String(12), nullable=False, index=True)
    original_url = Column(Text, nullable=False)
    owner_id = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    click_count = Column(BigInteger, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    # "metadata" is reserved on declarative classes
    url_metadata = Column("metadata", JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
