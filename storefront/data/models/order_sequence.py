from sqlalchemy import Column, Integer, String

from storefront.data.database import Base


class OrderSequenceModel(Base):
    """Licznik zamowien per dzien, inkrementowany atomowo w transakcji zamowienia."""

    __tablename__ = "order_sequences"

    day = Column(String(8), primary_key=True)  # YYYYMMDD
    last_value = Column(Integer, nullable=False, default=0)
