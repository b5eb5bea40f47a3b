"""
Configuración común de pruebas.
La base de datos de pruebas es un SQLite temporal; la variable de entorno
se fija antes de importar la aplicación.
"""
import os
import tempfile

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="cotizador-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'cotizador.db')}"


@pytest.fixture
def client():
    """Cliente HTTP con tablas recién creadas."""
    from fastapi.testclient import TestClient
    from cotizador.db.database import Base, engine
    from cotizador.main import app
    from cotizador.models import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def express_payload():
    """Respuesta de Consolidado Express lista para enviar."""
    return {
        "serviceType": "Consolidado Express",
        "quotationInfo": {
            "correlative": "COT-2024-001",
            "date": "2024-05-10",
            "advisorId": "asesor-7",
        },
        "products": [
            {
                "productId": "p-1",
                "name": "Audífonos",
                "variants": [
                    {"variantId": "v-1", "quantity": 10, "price": 25, "color": "negro"},
                    {"variantId": "v-2", "quantity": 10, "price": 15, "color": "blanco"},
                ],
            }
        ],
        "calculations": {
            "dynamicValues": {
                "flete": 40,
                "seguro": 5,
                "desaduanaje": 15,
                "servicioConsolidado": 100,
            },
            "taxPercentage": {"adValoremRate": 4, "igvRate": 16, "ipmRate": 2},
            "exemptions": {},
        },
    }
