"""
AssetInstance model: one concrete record of an asset, for row-level grants.
"""
from sqlalchemy import String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assetguard.core.database.base import Base, TimestampMixin
from assetguard.features.catalog.models import Asset


class AssetInstance(Base, TimestampMixin):
    __tablename__ = "asset_instances"
    __table_args__ = (
        UniqueConstraint("asset_id", "record_id", name="uq_asset_instances_asset_record"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(
        ForeignKey("assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Identifier of the row in the asset's own table, kept as text
    record_id: Mapped[str] = mapped_column(String(100), nullable=False)

    asset: Mapped["Asset"] = relationship("Asset", lazy="selectin")

    def __repr__(self) -> str:
        return f"<AssetInstance(id={self.id}, asset_id={self.asset_id}, record_id={self.record_id!r})>"
