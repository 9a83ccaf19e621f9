from sqlalchemy import Column, Integer, String, DateTime, func
from distro.services.database import Base

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String, nullable=False, index=True)  # CREATE, UPDATE, DELETE
    entity = Column(String, nullable=False, index=True)  # RELEASE, TRACK, PRODUCT
    entity_id = Column(String, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    user_name = Column(String, nullable=False)
    user_role = Column(String, nullable=False)
    details = Column(String, nullable=False)
    ip_address = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
