"""
Esquemas Pydantic de la API de respuestas de cotización.
El formato de intercambio es camelCase, igual al DTO de las vistas.
Los montos del formulario se sanean aquí: un valor incompleto nunca
impide recalcular.
"""
from pydantic import AliasChoices, BaseModel, Field, validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum

from ..core.config import settings
from ..services.service_types import ServiceType
from ..utils.validators import to_amount, to_optional_amount, to_optional_number


class CamelModel(BaseModel):
    """Base con alias camelCase; acepta también los nombres Python."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _optional_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# ===================== ENUMS =====================

class ResponseStatusEnum(str, Enum):
    BORRADOR = "borrador"
    ENVIADA = "enviada"
    APROBADA = "aprobada"
    OBSERVADA = "observada"


# ===================== PRODUCTOS =====================

class VariantInput(CamelModel):
    """Variante cotizada. Cantidad y precio se conservan para validar el envío."""
    variant_id: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = Field(None, validation_alias=AliasChoices("price", "unitPrice"))
    is_quoted: bool = Field(True, validation_alias=AliasChoices("isQuoted", "seCotizaVariante", "is_quoted"))
    size: Optional[str] = None
    presentation: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None

    @validator('variant_id', pre=True)
    def coerce_id(cls, v):
        return _optional_id(v)

    @validator('quantity', 'price', pre=True)
    def parse_number(cls, v):
        return to_optional_number(v)

    @validator('is_quoted', pre=True)
    def default_quoted(cls, v):
        return True if v is None else v


class ProductInput(CamelModel):
    """Producto con variantes y datos opcionales de packing list."""
    product_id: Optional[str] = None
    name: str = ""
    is_quoted: bool = Field(True, validation_alias=AliasChoices("isQuoted", "seCotizaProducto", "is_quoted"))
    variants: List[VariantInput] = Field(default_factory=list)
    cajas: Optional[float] = None
    peso_kg: Optional[float] = None
    volumen_cbm: Optional[float] = Field(None, alias="volumenCBM")

    @validator('product_id', pre=True)
    def coerce_id(cls, v):
        return _optional_id(v)

    @validator('name', pre=True)
    def blank_name(cls, v):
        return "" if v is None else str(v)

    @validator('is_quoted', pre=True)
    def default_quoted(cls, v):
        return True if v is None else v

    @validator('cajas', 'peso_kg', 'volumen_cbm', pre=True)
    def sanitize_packing(cls, v):
        return to_optional_amount(v)


# ===================== VALORES DEL FORMULARIO =====================

class DynamicValuesInput(CamelModel):
    """Valores editables; los opcionales vacíos se derivan de los productos."""
    comercial_value: Optional[float] = None
    fob: Optional[float] = None
    cajas: Optional[float] = None
    kg: Optional[float] = None
    ton: Optional[float] = None
    volumen_cbm: Optional[float] = Field(None, alias="volumenCBM")

    flete: float = 0
    seguro: float = 0
    tipo_cambio: float = Field(default_factory=lambda: settings.DEFAULT_TIPO_CAMBIO)
    calculo_flete: float = 0
    desaduanaje: float = 0

    servicio_consolidado: float = 0
    separacion_carga: float = 0
    seguro_productos: float = 0
    inspeccion_productos: float = Field(
        0, validation_alias=AliasChoices("inspeccionProductos", "inspeccionProducto", "inspeccion_productos")
    )
    gestion_certificado: float = 0
    inspeccion_fabrica: float = 0
    transporte_local: float = 0
    otros_servicios: float = 0
    transporte_local_china_envio: float = 0
    transporte_local_cliente_envio: float = 0

    antidumping_gobierno: float = 0
    antidumping_cantidad: float = 0

    @validator('comercial_value', 'fob', 'cajas', 'kg', 'ton', 'volumen_cbm', pre=True)
    def sanitize_override(cls, v):
        return to_optional_amount(v)

    @validator(
        'flete', 'seguro', 'tipo_cambio', 'calculo_flete', 'desaduanaje',
        'servicio_consolidado', 'separacion_carga', 'seguro_productos',
        'inspeccion_productos', 'gestion_certificado', 'inspeccion_fabrica',
        'transporte_local', 'otros_servicios', 'transporte_local_china_envio',
        'transporte_local_cliente_envio', 'antidumping_gobierno', 'antidumping_cantidad',
        pre=True
    )
    def sanitize_amount(cls, v):
        return to_amount(v)


class TaxPercentageInput(CamelModel):
    """Tasas en porcentaje."""
    ad_valorem_rate: float = Field(default_factory=lambda: settings.DEFAULT_AD_VALOREM_RATE)
    igv_rate: float = Field(default_factory=lambda: settings.DEFAULT_IGV_RATE)
    ipm_rate: float = Field(default_factory=lambda: settings.DEFAULT_IPM_RATE)
    percepcion_rate: float = Field(
        default_factory=lambda: settings.DEFAULT_PERCEPCION_RATE,
        validation_alias=AliasChoices("percepcionRate", "percepcion", "percepcion_rate"),
    )
    isc_rate: float = Field(default_factory=lambda: settings.DEFAULT_ISC_RATE)

    @validator('*', pre=True)
    def sanitize_rate(cls, v):
        return to_amount(v)


class ExemptionsInput(CamelModel):
    """Banderas de exoneración."""
    servicio_consolidado_aereo: bool = False
    servicio_consolidado_maritimo: bool = False
    separacion_carga: bool = False
    inspeccion_productos: bool = False
    obligaciones_fiscales: bool = False
    gestion_certificado: bool = False
    servicio_inspeccion: bool = False
    transporte_local: bool = False
    total_derechos: bool = False
    descuento_grupal_express: bool = False

    @validator('*', pre=True)
    def none_is_false(cls, v):
        return False if v is None else v


class CalculationsInput(CamelModel):
    dynamic_values: DynamicValuesInput = Field(default_factory=DynamicValuesInput)
    tax_percentage: TaxPercentageInput = Field(default_factory=TaxPercentageInput)
    exemptions: ExemptionsInput = Field(default_factory=ExemptionsInput)


class QuotationInfoInput(CamelModel):
    quotation_id: Optional[str] = None
    correlative: Optional[str] = None
    date: Optional[str] = None
    advisor_id: Optional[str] = None

    @validator('quotation_id', 'correlative', 'advisor_id', pre=True)
    def coerce_text(cls, v):
        return _optional_id(v)


# ===================== SOLICITUDES =====================

class CalculationRequest(CamelModel):
    """Instantánea del formulario para recalcular la respuesta."""
    service_type: ServiceType
    es_primera_compra: bool = False
    products: List[ProductInput] = Field(default_factory=list)
    calculations: CalculationsInput = Field(default_factory=CalculationsInput)


class QuotationResponseCreate(CalculationRequest):
    """
    Respuesta de cotización a enviar.
    Los datos obligatorios se revisan con validate_quotation_response para
    devolver mensajes legibles en lugar de errores de esquema.
    """
    quotation_id: Optional[str] = None
    service_type: Optional[ServiceType] = None
    quotation_info: QuotationInfoInput = Field(default_factory=QuotationInfoInput)

    @validator('quotation_id', pre=True)
    def coerce_id(cls, v):
        return _optional_id(v)


class StatusUpdate(CamelModel):
    status: ResponseStatusEnum
    notes: Optional[str] = Field(None, max_length=1000)


# ===================== RESPUESTAS =====================

class ValidationResult(CamelModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


class QuotationResponseSummary(CamelModel):
    """Versión persistida sin la instantánea."""
    id: int
    quotation_id: str
    correlative: Optional[str] = None
    service_type: str
    advisor_id: Optional[str] = None
    version: int
    status: ResponseStatusEnum
    is_current: bool
    total_investment: float
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @validator('status', pre=True)
    def status_value(cls, v):
        return getattr(v, "value", v)


class QuotationResponseOut(QuotationResponseSummary):
    """Versión persistida con su instantánea JSON."""
    snapshot: Dict[str, Any]
