"""
OrdinalPartition: the head record of one ordered collection.

One row per (collection, partition_id), e.g. ("restaurant_queue", <restaurant
id>) or ("playlist", <playlist id>). Every mutation of the partition locks
this row first, reads `size` as the current max position, and bumps
`version`. It replaces any "SELECT MAX(position)" style counter.
"""

from sqlalchemy import Column, String, Integer, CheckConstraint

from tableside.db.base import Base, TimestampMixin


class OrdinalPartition(Base, TimestampMixin):
    __tablename__ = "ordinal_partitions"

    collection = Column(String(32), primary_key=True)
    partition_id = Column(String(36), primary_key=True)
    size = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("size >= 0", name="check_partition_size_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<OrdinalPartition({self.collection}:{self.partition_id}, size={self.size}, v{self.version})>"
