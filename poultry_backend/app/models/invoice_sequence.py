"""
Invoice number counter, one row per invoice date.
"""

from sqlalchemy import Column, Integer, Date
from poultry_backend.app.db.session import Base


class InvoiceSequence(Base):
    """Last invoice number issued for a date."""
    __tablename__ = "invoice_sequences"

    invoice_date = Column(Date, primary_key=True)
    last_number = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<InvoiceSequence(date={self.invoice_date}, last={self.last_number})>"
