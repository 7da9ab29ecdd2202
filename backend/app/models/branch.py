from sqlalchemy import Column, Integer, String, UniqueConstraint, Boolean, DateTime
from datetime import datetime
from sqlalchemy.orm import declarative_base


Base = declarative_base()


class Branch(Base):
    __tablename__ = "branches"
    __table_args__ = (UniqueConstraint("name", name="uq_branch_name"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
