"""
Configuración de base de datos.
PostgreSQL en producción; SQLite se acepta para desarrollo y pruebas.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
from ..core.config import settings


def _engine_options(database_url: str) -> dict:
    """Opciones del motor según el dialecto configurado."""
    if database_url.startswith("sqlite"):
        # SQLite no admite pool_size/max_overflow con su pool por defecto
        return {
            "connect_args": {"check_same_thread": False},
            "echo": settings.DEBUG,
        }
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "echo": settings.DEBUG,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Sesión de base de datos
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Base para modelos declarativos
Base = declarative_base()


def get_db():
    """
    Dependency para obtener sesión de base de datos.
    Garantiza cierre correcto de conexión.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Inicializa las tablas de la base de datos."""
    # Registra los modelos en el metadata antes de crear tablas
    from ..models import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
