"""
Aplicación principal FastAPI del cotizador de respuestas de importación.
"""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .db.database import init_db
from .api.endpoints import quotation_responses
from .api.middleware.audit import AuditLogMiddleware

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Crear aplicación
app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## Cotizador de Respuestas de Importación

    Motor de cálculo de costos de importación para responder cotizaciones
    de servicios consolidados (Express, Grupal Express, Marítimo y Grupal
    Marítimo).

    ### Funcionalidades:
    - Recalculo en vivo del formulario de respuesta
    - CIF, AD/VALOREM, IGV, IPM, antidumping, ISC y percepción
    - Servicios con IGV y exoneraciones por tipo de servicio
    - Prorrateo del costo de importación por producto
    - Versiones persistidas y ciclo de vida de la respuesta
    """,
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AuditLogMiddleware)

# Incluir routers
app.include_router(quotation_responses.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    """Inicialización al arrancar la aplicación."""
    init_db()
    logger.info("%s v%s iniciado; documentación en /api/docs", settings.APP_NAME, settings.APP_VERSION)


@app.get("/")
async def root():
    """Endpoint raíz."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }


@app.get("/health")
async def health_check():
    """Health check para monitoreo."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }
