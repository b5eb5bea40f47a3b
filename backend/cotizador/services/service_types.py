"""
Tabla declarativa de tipos de servicio.

Cada tipo de servicio define qué conceptos de servicio participan en el
cálculo, qué bandera de exoneración anula cada concepto, el régimen de
derechos aplicable y las líneas fijas de gastos de importación. Todos los
pasos del motor consultan esta tabla; ningún paso compara cadenas de
tipo de servicio por su cuenta.
"""
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class ServiceType(str, Enum):
    """Tipos de servicio logístico cotizables."""
    CONSOLIDADO_EXPRESS = "Consolidado Express"
    CONSOLIDADO_GRUPAL_EXPRESS = "Consolidado Grupal Express"
    CONSOLIDADO_MARITIMO = "Consolidado Maritimo"
    CONSOLIDADO_GRUPAL_MARITIMO = "Consolidado Grupal Maritimo"

    @classmethod
    def _missing_(cls, value):
        # Acepta "Consolidado Marítimo", mayúsculas y espacios extra
        if not isinstance(value, str):
            return None
        wanted = _normalize_label(value)
        for member in cls:
            if _normalize_label(member.value) == wanted:
                return member
        return None


class DutyRegime(str, Enum):
    """Régimen de derechos aduaneros."""
    EXPRESS_PERSONAL = "express_personal"
    EXPRESS_SIMPLIFICADA = "express_simplificada"
    GRUPAL_EXPRESS = "grupal_express"
    MARITIMO = "maritimo"


def _normalize_label(label: str) -> str:
    decomposed = unicodedata.normalize("NFKD", label)
    without_accents = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(without_accents.lower().split())


# Etiquetas de presentación de cada concepto
FIELD_LABELS: Dict[str, str] = {
    "servicioConsolidado": "Servicio Consolidado",
    "separacionCarga": "Separación de Carga",
    "seguroProductos": "Seguro de Productos",
    "inspeccionProductos": "Inspección de Productos",
    "gestionCertificado": "Gestión de Certificado de Origen",
    "inspeccionFabrica": "Inspección de Fábrica",
    "transporteLocal": "Transporte Local",
    "otrosServicios": "Otros Servicios",
    "transporteLocalChina": "Transporte Local China",
    "transporteLocalDestino": "Transporte Local Destino",
    "igvServicios": "IGV Servicios",
    "addvaloremigvipm": "AD/VALOREM + IGV + IPM",
    "totalDerechos": "Total de Derechos",
    "desadunajefleteseguro": "Desaduanaje + Flete + Seguro",
    "desaduanaje": "Desaduanaje",
    "fleteInternacional": "Flete Internacional",
}

# Clave del concepto de servicio -> atributo de DynamicValues que lo alimenta
SERVICE_FIELD_SOURCES: Dict[str, str] = {
    "servicioConsolidado": "servicio_consolidado",
    "separacionCarga": "separacion_carga",
    "seguroProductos": "seguro_productos",
    "inspeccionProductos": "inspeccion_productos",
    "gestionCertificado": "gestion_certificado",
    "inspeccionFabrica": "inspeccion_fabrica",
    "transporteLocal": "transporte_local",
    "otrosServicios": "otros_servicios",
    "transporteLocalChina": "transporte_local_china_envio",
    "transporteLocalDestino": "transporte_local_cliente_envio",
}

# Línea de derechos (composite) y líneas fijas de gastos por régimen
DUTY_EXPENSE_LINE: Dict[DutyRegime, Optional[str]] = {
    DutyRegime.EXPRESS_PERSONAL: None,
    DutyRegime.EXPRESS_SIMPLIFICADA: "addvaloremigvipm",
    DutyRegime.GRUPAL_EXPRESS: "addvaloremigvipm",
    DutyRegime.MARITIMO: "totalDerechos",
}

FIXED_EXPENSE_LINES: Dict[DutyRegime, Tuple[str, ...]] = {
    DutyRegime.EXPRESS_PERSONAL: ("fleteInternacional", "desaduanaje"),
    DutyRegime.EXPRESS_SIMPLIFICADA: ("desadunajefleteseguro",),
    DutyRegime.GRUPAL_EXPRESS: ("fleteInternacional",),
    DutyRegime.MARITIMO: (),
}


@dataclass(frozen=True)
class ServiceTypeConfig:
    """Reglas de cálculo de un tipo de servicio."""
    service_type: ServiceType
    is_maritime: bool
    # (concepto, bandera de exoneración que lo anula o None)
    service_fields: Tuple[Tuple[str, Optional[str]], ...]
    # Valor comercial bajo el cual aplica el régimen personal exonerado
    personal_threshold: Optional[float] = None
    # Porcentaje de descuento sobre AD/VALOREM + IGV + IPM
    duty_discount_percent: float = 0.0
    # Conceptos siempre exonerados para este tipo de servicio
    exonerated_service_fields: Tuple[str, ...] = ()
    banner: Optional[str] = None

    @property
    def applies_additional_duties(self) -> bool:
        """Antidumping, ISC y percepción solo aplican a marítimo."""
        return self.is_maritime

    @property
    def field_keys(self) -> Tuple[str, ...]:
        return tuple(key for key, _ in self.service_fields)

    def regime_for(self, comercial_value: float) -> DutyRegime:
        """Resuelve el régimen de derechos según el valor comercial."""
        if self.is_maritime:
            return DutyRegime.MARITIMO
        if self.duty_discount_percent > 0:
            return DutyRegime.GRUPAL_EXPRESS
        if self.personal_threshold is not None and comercial_value < self.personal_threshold:
            return DutyRegime.EXPRESS_PERSONAL
        return DutyRegime.EXPRESS_SIMPLIFICADA

    def expense_lines_for(self, regime: DutyRegime) -> Tuple[Optional[str], Tuple[str, ...]]:
        return DUTY_EXPENSE_LINE[regime], FIXED_EXPENSE_LINES[regime]


_AIR_TRANSPORT_FIELDS: Tuple[Tuple[str, Optional[str]], ...] = (
    ("transporteLocalChina", "transporteLocal"),
    ("transporteLocalDestino", "transporteLocal"),
)

_MARITIME_FIELDS: Tuple[Tuple[str, Optional[str]], ...] = (
    ("servicioConsolidado", "servicioConsolidadoMaritimo"),
    ("gestionCertificado", "gestionCertificado"),
    ("inspeccionProductos", "servicioInspeccion"),
    ("inspeccionFabrica", "servicioInspeccion"),
    ("transporteLocal", "transporteLocal"),
    ("otrosServicios", None),
) + _AIR_TRANSPORT_FIELDS


SERVICE_TYPE_CONFIG: Dict[ServiceType, ServiceTypeConfig] = {
    ServiceType.CONSOLIDADO_EXPRESS: ServiceTypeConfig(
        service_type=ServiceType.CONSOLIDADO_EXPRESS,
        is_maritime=False,
        service_fields=(
            ("servicioConsolidado", "servicioConsolidadoAereo"),
            ("separacionCarga", "separacionCarga"),
            ("inspeccionProductos", "inspeccionProductos"),
        ) + _AIR_TRANSPORT_FIELDS,
        personal_threshold=200.0,
        banner="Exonerado de impuestos: valor comercial menor a USD 200",
    ),
    ServiceType.CONSOLIDADO_GRUPAL_EXPRESS: ServiceTypeConfig(
        service_type=ServiceType.CONSOLIDADO_GRUPAL_EXPRESS,
        is_maritime=False,
        service_fields=(
            ("servicioConsolidado", "servicioConsolidadoAereo"),
            ("seguroProductos", "separacionCarga"),
            ("inspeccionProductos", "inspeccionProductos"),
        ) + _AIR_TRANSPORT_FIELDS,
        duty_discount_percent=50.0,
        exonerated_service_fields=("inspeccionProductos",),
        banner="Servicios exonerados y 50% descuento en impuestos",
    ),
    ServiceType.CONSOLIDADO_MARITIMO: ServiceTypeConfig(
        service_type=ServiceType.CONSOLIDADO_MARITIMO,
        is_maritime=True,
        service_fields=_MARITIME_FIELDS,
    ),
    ServiceType.CONSOLIDADO_GRUPAL_MARITIMO: ServiceTypeConfig(
        service_type=ServiceType.CONSOLIDADO_GRUPAL_MARITIMO,
        is_maritime=True,
        service_fields=_MARITIME_FIELDS,
    ),
}


def get_service_config(service_type) -> ServiceTypeConfig:
    """Obtiene la configuración de un tipo de servicio (acepta la etiqueta)."""
    return SERVICE_TYPE_CONFIG[ServiceType(service_type)]
