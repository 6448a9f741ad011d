"""
Transaction database model.

Immutable payment split recorded when a mission is delivered.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, Numeric
from sqlalchemy.sql import func
from parcelhop.app.db.session import Base
from parcelhop.app.models.billing_enums import TransactionStatus


class Transaction(Base):
    """
    Transaction model.

    One per delivered parcel (unique parcel_id). amount = platform_fee + carrier_payout.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey('parcels.id'), unique=True, nullable=False, index=True)
    mission_id = Column(Integer, ForeignKey('missions.id'), nullable=False, index=True)

    # Parties
    vendor_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)  # Payer
    carrier_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)  # Payee

    # Financials
    amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    carrier_payout = Column(Numeric(10, 2), nullable=False)

    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING_RELEASE, nullable=False, index=True)

    # Immutable - no updated_at
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Transaction(id={self.id}, parcel_id={self.parcel_id}, payout={self.carrier_payout})>"
