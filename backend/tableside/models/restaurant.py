"""
Restaurant model: the queue-owning venue.

Owned by the restaurant collaborator; the queue engine only reads its
admission settings and writes the reconciled rating aggregate.
"""

from sqlalchemy import Column, String, Boolean, Integer, Float, CheckConstraint

from tableside.db.base import Base, TimestampMixin, new_id


class Restaurant(Base, TimestampMixin):
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Admission settings
    max_requests_per_user = Column(Integer, nullable=False, default=2)
    queue_limit = Column(Integer, nullable=False, default=50)

    # Derived by the stats reconciler
    rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("max_requests_per_user > 0", name="check_max_requests_per_user_positive"),
        CheckConstraint("queue_limit > 0", name="check_queue_limit_positive"),
    )

    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id}, slug={self.slug}, active={self.is_active})>"
