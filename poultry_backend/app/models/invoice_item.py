"""
Invoice line database model.

One weighing at the scale. Immutable once posted with its invoice.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, UniqueConstraint
from poultry_backend.app.db.session import Base
from poultry_backend.app.models.immutable import append_only


@append_only
class InvoiceItem(Base):
    """
    Invoice line.

    net_weight = gross_weight - cages_count * cage_weight
    net_amount = net_weight * unit_price - discount, rounded to cents once.
    """
    __tablename__ = "invoice_items"
    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="uq_invoice_item_line"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)

    # Scale
    gross_weight = Column(Numeric(12, 3), nullable=False)
    cages_count = Column(Integer, nullable=False, default=0)
    cage_weight = Column(Numeric(12, 3), nullable=False, default=0)
    net_weight = Column(Numeric(12, 3), nullable=False)

    # Pricing
    unit_price = Column(Numeric(12, 2), nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    total_amount = Column(Numeric(18, 2), nullable=False)
    discount_amount = Column(Numeric(18, 2), nullable=False)
    net_amount = Column(Numeric(18, 2), nullable=False)

    def __repr__(self):
        return f"<InvoiceItem(invoice_id={self.invoice_id}, line={self.line_number}, net={self.net_amount})>"
