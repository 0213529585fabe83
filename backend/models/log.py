from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, CheckConstraint, Index, func
from sqlalchemy.orm import relationship
from database import Base

# Audit trail of shopper and admin actions (cart edits, checkouts, order changes).
# Rows are written by utils.audit.write_log and never updated.
class Log(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    ts = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Null for guests and for Stripe webhook deliveries
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(50), nullable=False, index=True)  # ORDER_CREATE, CART_ADD, ...
    resource = Column(String(50), nullable=False, index=True)  # orders, cart, ratings, auth
    status = Column(String(20), nullable=False, default="SUCCESS", index=True)
    ip = Column(String(64), nullable=True)

    # Free-form context: order ids, totals, Stripe ids
    meta = Column(JSON, nullable=True)

    user = relationship("User", lazy="joined", uselist=False)

    __table_args__ = (
        CheckConstraint("status IN ('SUCCESS', 'FAIL')", name="ck_logs_status"),
        Index("ix_logs_resource_action", "resource", "action"),
    )
