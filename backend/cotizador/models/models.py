"""
Modelos de base de datos del cotizador.

Cada envío de una respuesta de cotización crea una versión nueva con la
instantánea JSON del DTO calculado; la versión anterior queda marcada como
reemplazada, nunca se elimina.
"""
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime,
    Text, Enum, JSON, Index
)
from sqlalchemy.sql import func
from ..db.database import Base
import enum


class ResponseStatus(enum.Enum):
    """Estado de la respuesta de cotización."""
    BORRADOR = "borrador"
    ENVIADA = "enviada"
    APROBADA = "aprobada"
    OBSERVADA = "observada"


# Transiciones permitidas del ciclo de vida
STATUS_TRANSITIONS = {
    ResponseStatus.BORRADOR: {ResponseStatus.ENVIADA},
    ResponseStatus.ENVIADA: {ResponseStatus.APROBADA, ResponseStatus.OBSERVADA},
    ResponseStatus.OBSERVADA: {ResponseStatus.ENVIADA},
    ResponseStatus.APROBADA: set(),
}


class QuotationResponse(Base):
    """Versión de una respuesta de cotización."""
    __tablename__ = "quotation_responses"

    id = Column(Integer, primary_key=True, index=True)

    # Cotización
    quotation_id = Column(String(100), nullable=False, index=True)
    correlative = Column(String(100))
    service_type = Column(String(100), nullable=False)
    advisor_id = Column(String(100))

    # Versión
    version = Column(Integer, nullable=False, default=1)
    is_current = Column(Boolean, default=True, nullable=False)
    status = Column(Enum(ResponseStatus), default=ResponseStatus.BORRADOR, nullable=False)
    notes = Column(Text)

    # Instantánea del DTO calculado
    snapshot = Column(JSON, nullable=False)
    total_investment = Column(Float, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("ix_quotation_responses_quotation_version", "quotation_id", "version", unique=True),
    )

    def can_transition_to(self, new_status: ResponseStatus) -> bool:
        return self.is_current and new_status in STATUS_TRANSITIONS[self.status]


class AuditLog(Base):
    """Log de auditoría de las operaciones sobre respuestas."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Acción
    action = Column(String(50), nullable=False)  # CREATE, STATUS_CHANGE
    entity_type = Column(String(100))
    entity_id = Column(Integer)

    # Datos
    old_values = Column(JSON)
    new_values = Column(JSON)

    # Metadatos
    ip_address = Column(String(50))
    user_agent = Column(String(500))
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
