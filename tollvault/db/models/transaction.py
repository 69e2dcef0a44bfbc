"""
Transaction Model - one toll event imported from a CSV upload

Rows are never updated; they are removed only in bulk by clearing the most
recent upload batch.
"""
from sqlalchemy import Column, Date, Integer, Numeric, String

from tollvault.db.database import Base

# Amount columns: 11 integer digits, 4 fractional. 15 significant digits also
# survive SQLite's REAL storage unchanged.
AMOUNT_PRECISION = 15
AMOUNT_SCALE = 4


class Transaction(Base):
    """Toll transaction keyed by its enrolment number/date string"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # natural idempotency key - re-imports of the same row are ignored
    enrolment_no_date = Column(String, unique=True, nullable=False)

    total_amount_charged = Column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), nullable=False, default=0)
    gst_amount = Column(Numeric(AMOUNT_PRECISION, AMOUNT_SCALE), nullable=False, default=0)

    operator_id = Column(String, nullable=True)
    resident_name = Column(String, nullable=True)

    # processing date of the upload, not a CSV field
    upload_date = Column(Date, nullable=True, index=True)
