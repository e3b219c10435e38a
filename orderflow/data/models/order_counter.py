from sqlalchemy import Column, Integer, String

from orderflow.data.database import Base


class OrderCounterModel(Base):
    """Last minted order sequence for one calendar day (``YYYYMMDD``)."""

    __tablename__ = "order_counters"

    day = Column(String(8), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
