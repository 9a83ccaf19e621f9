import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from distro.core.security import Identity
from distro.models.audit_log import AuditLog
from distro.services.database import get_session_factory

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes the audit trail. Never raises: a failed log must not fail the request."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def record(
        self,
        action: str,
        entity: str,
        entity_id: str,
        identity: Optional[Identity],
        details: str,
        ip_address: str = "unknown",
    ) -> None:
        try:
            async with self.session_factory() as session:
                session.add(AuditLog(
                    action=action,
                    entity=entity,
                    entity_id=str(entity_id),
                    user_id=identity.id if identity else "",
                    user_name=(identity.name if identity else None) or "Usuario sin nombre",
                    user_role=identity.role if identity else "",
                    details=details,
                    ip_address=ip_address,
                ))
                await session.commit()
        except Exception as e:
            logger.error(f"Error al crear el log ({action} {entity} {entity_id}): {e}")


def get_audit_logger(session_factory: sessionmaker = Depends(get_session_factory)) -> AuditLogger:
    return AuditLogger(session_factory)
