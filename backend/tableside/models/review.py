"""
Review model. Only the rating column matters to the stats reconciler.
"""

from sqlalchemy import Column, String, Integer, ForeignKey, CheckConstraint

from tableside.db.base import Base, TimestampMixin, new_id


class Review(Base, TimestampMixin):
    __tablename__ = "restaurant_reviews"

    id = Column(String(36), primary_key=True, default=new_id)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    rating = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="check_review_rating_range"),
    )
