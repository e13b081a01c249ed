from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.sql import func

from agenda.models.base import Base


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    phone_number = Column(String(20), nullable=False)
    email = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Client(id={self.id}, name={self.name})>"
