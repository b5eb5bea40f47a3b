"""
Motor de cálculo de costos de importación.
Deriva, a partir de los productos cotizados y de los valores editables del
formulario, la cascada completa de la respuesta de cotización:
valor comercial, CIF, obligaciones fiscales, servicios, gastos de
importación, prorrateo por producto y resumen final.

Todas las funciones son puras: la misma entrada produce siempre la misma
salida y ningún paso modifica sus argumentos.
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from ..core.config import settings
from ..utils.validators import to_amount, to_optional_amount
from .service_types import (
    DutyRegime,
    FIELD_LABELS,
    SERVICE_FIELD_SOURCES,
    ServiceType,
    ServiceTypeConfig,
    get_service_config,
)

logger = logging.getLogger(__name__)


def round_money(value: float, places: int = 2) -> float:
    """Redondeo comercial (mitad hacia arriba) a `places` decimales."""
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Datos de entrada
# ---------------------------------------------------------------------------

@dataclass
class VariantData:
    """Variante de un producto cotizado."""
    variant_id: Optional[str] = None
    quantity: float = 0
    price: float = 0
    is_quoted: bool = True
    size: Optional[str] = None
    presentation: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None

    def __post_init__(self):
        self.quantity = to_amount(self.quantity)
        self.price = to_amount(self.price)

    @property
    def total(self) -> float:
        return self.price * self.quantity


@dataclass
class ProductData:
    """Producto con sus variantes y, opcionalmente, datos de packing list."""
    product_id: Optional[str] = None
    name: str = ""
    is_quoted: bool = True
    variants: List[VariantData] = field(default_factory=list)
    cajas: Optional[float] = None
    peso_kg: Optional[float] = None
    volumen_cbm: Optional[float] = None

    def __post_init__(self):
        self.cajas = to_optional_amount(self.cajas)
        self.peso_kg = to_optional_amount(self.peso_kg)
        self.volumen_cbm = to_optional_amount(self.volumen_cbm)

    def quoted_variants(self) -> List[VariantData]:
        if not self.is_quoted:
            return []
        return [v for v in self.variants if v.is_quoted]

    @property
    def quoted_quantity(self) -> float:
        return sum(v.quantity for v in self.quoted_variants())

    @property
    def quoted_total(self) -> float:
        return sum(v.total for v in self.quoted_variants())


# Campos de DynamicValues que se derivan cuando llegan vacíos
_OVERRIDE_FIELDS = ("comercial_value", "fob", "cajas", "kg", "ton", "volumen_cbm", "cif")


@dataclass
class DynamicValues:
    """
    Valores editables de una respuesta de cotización.

    Los campos opcionales (valor comercial, FOB, cajas, peso, volumen) se
    derivan de los productos cuando valen None; un valor explícito los
    sobrescribe. `cif` siempre se recalcula.
    """
    comercial_value: Optional[float] = None
    fob: Optional[float] = None
    cajas: Optional[float] = None
    kg: Optional[float] = None
    ton: Optional[float] = None
    volumen_cbm: Optional[float] = None
    cif: Optional[float] = None

    flete: float = 0
    seguro: float = 0
    tipo_cambio: float = field(default_factory=lambda: settings.DEFAULT_TIPO_CAMBIO)
    calculo_flete: float = 0
    desaduanaje: float = 0

    # Servicios
    servicio_consolidado: float = 0
    separacion_carga: float = 0
    seguro_productos: float = 0
    inspeccion_productos: float = 0
    gestion_certificado: float = 0
    inspeccion_fabrica: float = 0
    transporte_local: float = 0
    otros_servicios: float = 0
    transporte_local_china_envio: float = 0
    transporte_local_cliente_envio: float = 0

    # Antidumping (solo marítimo)
    antidumping_gobierno: float = 0
    antidumping_cantidad: float = 0

    def __post_init__(self):
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if name in _OVERRIDE_FIELDS:
                setattr(self, name, to_optional_amount(value))
            else:
                setattr(self, name, to_amount(value))


@dataclass
class TaxPercentage:
    """Tasas en porcentaje (4.0 significa 4%)."""
    ad_valorem_rate: float = field(default_factory=lambda: settings.DEFAULT_AD_VALOREM_RATE)
    igv_rate: float = field(default_factory=lambda: settings.DEFAULT_IGV_RATE)
    ipm_rate: float = field(default_factory=lambda: settings.DEFAULT_IPM_RATE)
    percepcion_rate: float = field(default_factory=lambda: settings.DEFAULT_PERCEPCION_RATE)
    isc_rate: float = field(default_factory=lambda: settings.DEFAULT_ISC_RATE)

    def __post_init__(self):
        for name in self.__dataclass_fields__:
            setattr(self, name, to_amount(getattr(self, name)))


# Bandera de exoneración (clave del DTO) -> atributo
EXEMPTION_FLAGS: Dict[str, str] = {
    "servicioConsolidadoAereo": "servicio_consolidado_aereo",
    "servicioConsolidadoMaritimo": "servicio_consolidado_maritimo",
    "separacionCarga": "separacion_carga",
    "inspeccionProductos": "inspeccion_productos",
    "obligacionesFiscales": "obligaciones_fiscales",
    "gestionCertificado": "gestion_certificado",
    "servicioInspeccion": "servicio_inspeccion",
    "transporteLocal": "transporte_local",
    "totalDerechos": "total_derechos",
    "descuentoGrupalExpress": "descuento_grupal_express",
}


@dataclass
class Exemptions:
    """Banderas de exoneración; una línea exonerada vale 0 en los totales."""
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

    def is_exempt(self, flag: Optional[str]) -> bool:
        if flag is None:
            return False
        return bool(getattr(self, EXEMPTION_FLAGS[flag]))

    @property
    def duties_exempt(self) -> bool:
        return self.obligaciones_fiscales or self.total_derechos


@dataclass
class EstimationFactors:
    """Factores de estimación para productos sin packing list."""
    peso_por_unidad_kg: float = field(default_factory=lambda: settings.PESO_POR_UNIDAD_KG)
    volumen_por_unidad_cbm: float = field(default_factory=lambda: settings.VOLUMEN_POR_UNIDAD_CBM)


@dataclass
class CalculationInput:
    """Instantánea completa de entrada del motor."""
    service_type: ServiceType
    products: List[ProductData] = field(default_factory=list)
    dynamic_values: DynamicValues = field(default_factory=DynamicValues)
    tax_percentage: TaxPercentage = field(default_factory=TaxPercentage)
    exemptions: Exemptions = field(default_factory=Exemptions)
    es_primera_compra: bool = False
    factors: EstimationFactors = field(default_factory=EstimationFactors)

    def __post_init__(self):
        self.service_type = ServiceType(self.service_type)


# ---------------------------------------------------------------------------
# Resultados
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CommercialTotals:
    comercial_value: float = 0
    fob: float = 0
    cajas: float = 0
    kg: float = 0
    ton: float = 0
    volumen_cbm: float = 0
    total_quantity: float = 0


@dataclass(frozen=True)
class AntidumpingResult:
    gobierno: float = 0
    cantidad: float = 0
    value: float = 0


@dataclass(frozen=True)
class FiscalObligations:
    """Obligaciones fiscales; `gross` conserva los montos antes de exonerar."""
    cif: float
    igv_base: float
    ad_valorem: float
    igv: float
    ipm: float
    antidumping: AntidumpingResult
    isc: float
    percepcion: float
    total_taxes: float
    gross_total_taxes: float
    total_exempted: float
    exempt: bool
    gross: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class ServiceLine:
    key: str
    label: str
    amount: float
    raw_amount: float
    exempt: bool


@dataclass(frozen=True)
class ServiceCalculations:
    lines: Tuple[ServiceLine, ...]
    subtotal_services: float
    igv_services: float
    total_services: float

    @property
    def service_fields(self) -> Dict[str, float]:
        return {line.key: line.amount for line in self.lines}


@dataclass(frozen=True)
class ExpenseLine:
    key: str
    label: str
    amount: float
    descuento: bool = False
    gross_amount: Optional[float] = None


@dataclass(frozen=True)
class ImportCosts:
    regime: DutyRegime
    lines: Tuple[ExpenseLine, ...]
    total_expenses: float

    @property
    def expense_fields(self) -> Dict[str, float]:
        return {line.key: line.amount for line in self.lines}


@dataclass(frozen=True)
class VariantCosting:
    variant_id: Optional[str]
    quantity: float
    price: float
    is_quoted: bool
    total: float
    unit_cost: float


@dataclass(frozen=True)
class ProductCosting:
    product_id: Optional[str]
    name: str
    is_quoted: bool
    quantity: float
    total: float
    equivalence: float
    import_costs: float
    total_cost: float
    unit_cost: float
    variants: Tuple[VariantCosting, ...] = ()

    @property
    def equivalence_display(self) -> int:
        """Equivalencia redondeada al entero para presentación."""
        return int(round_money(self.equivalence, 0))


@dataclass(frozen=True)
class AllocationTotals:
    total_quantity: float
    total_amount: float
    total_equivalence: float
    total_import_costs: float
    total_cost: float
    rounding_difference: float
    factor_m: float


@dataclass(frozen=True)
class QuoteSummary:
    comercial_value: float
    total_expenses: float
    total_investment: float
    total_investment_soles: float
    tax_exempt: bool
    banners: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CalculationResult:
    """Resultado completo de la cascada de cálculo."""
    service_type: ServiceType
    regime: DutyRegime
    is_maritime: bool
    es_primera_compra: bool
    dynamic_values: DynamicValues
    tax_percentage: TaxPercentage
    exemptions: Exemptions
    commercial: CommercialTotals
    flete: float
    cif: float
    fiscal_obligations: FiscalObligations
    service_calculations: ServiceCalculations
    import_costs: ImportCosts
    products: Tuple[ProductCosting, ...]
    allocation_totals: AllocationTotals
    summary: QuoteSummary


# ---------------------------------------------------------------------------
# Motor
# ---------------------------------------------------------------------------

class ImportCostCalculationEngine:
    """
    Motor de la cascada de costos de importación.
    Orden: agregado comercial -> CIF y derechos -> servicios -> gastos de
    importación -> prorrateo -> resumen.
    """

    FIRST_PURCHASE_DISCOUNT_PERCENT = 50.0

    @staticmethod
    def aggregate_commercial(
        products: List[ProductData],
        factors: EstimationFactors
    ) -> CommercialTotals:
        """
        Agregado comercial de productos y variantes cotizados.
        Los no cotizados no aportan a ningún total.
        """
        comercial_value = 0.0
        quantity = 0.0
        cajas = 0.0
        kg = 0.0
        volumen = 0.0

        for product in products:
            variants = product.quoted_variants()
            if not variants:
                continue

            product_quantity = sum(v.quantity for v in variants)
            comercial_value += sum(v.total for v in variants)
            quantity += product_quantity

            cajas += product.cajas if product.cajas is not None else product_quantity
            if product.peso_kg is not None:
                kg += product.peso_kg
            else:
                kg += product_quantity * factors.peso_por_unidad_kg
            if product.volumen_cbm is not None:
                volumen += product.volumen_cbm
            else:
                volumen += product_quantity * factors.volumen_por_unidad_cbm

        return CommercialTotals(
            comercial_value=comercial_value,
            fob=comercial_value,
            cajas=cajas,
            kg=kg,
            ton=kg / 1000,
            volumen_cbm=volumen,
            total_quantity=quantity,
        )

    @staticmethod
    def apply_overrides(
        derived: CommercialTotals,
        values: DynamicValues
    ) -> CommercialTotals:
        """
        Aplica los valores ingresados por el asesor sobre el agregado.
        Un valor comercial sin FOB explícito sincroniza el FOB; un peso en kg
        sin toneladas explícitas deriva ton = kg / 1000.
        """
        comercial_value = (
            values.comercial_value if values.comercial_value is not None
            else derived.comercial_value
        )
        if values.fob is not None:
            fob = values.fob
        elif values.comercial_value is not None:
            fob = values.comercial_value
        else:
            fob = derived.fob

        kg = values.kg if values.kg is not None else derived.kg
        if values.ton is not None:
            ton = values.ton
        elif values.kg is not None:
            ton = values.kg / 1000
        else:
            ton = derived.ton

        return replace(
            derived,
            comercial_value=comercial_value,
            fob=fob,
            cajas=values.cajas if values.cajas is not None else derived.cajas,
            kg=kg,
            ton=ton,
            volumen_cbm=(
                values.volumen_cbm if values.volumen_cbm is not None
                else derived.volumen_cbm
            ),
        )

    @staticmethod
    def round_commercial(commercial: CommercialTotals) -> CommercialTotals:
        """
        Redondea los valores que se devuelven al formulario.
        Se aplica antes de calcular flete y CIF, de modo que reenviar los
        valores devueltos produce el mismo resultado.
        """
        return replace(
            commercial,
            comercial_value=round_money(commercial.comercial_value),
            fob=round_money(commercial.fob),
            kg=round_money(commercial.kg),
            ton=round_money(commercial.ton, 3),
            volumen_cbm=round_money(commercial.volumen_cbm, 3),
        )

    @staticmethod
    def resolve_freight(
        config: ServiceTypeConfig,
        values: DynamicValues,
        commercial: CommercialTotals
    ) -> float:
        """
        Flete efectivo.
        Marítimo con tarifa de cálculo: flete = max(ton, CBM) * calculoFlete.
        """
        if config.is_maritime and values.calculo_flete > 0:
            return max(commercial.ton, commercial.volumen_cbm) * values.calculo_flete
        return values.flete

    @staticmethod
    def calculate_cif(fob: float, flete: float, seguro: float) -> float:
        """CIF = FOB + flete + seguro."""
        return fob + flete + seguro

    @staticmethod
    def resolve_exemptions(
        config: ServiceTypeConfig,
        exemptions: Exemptions,
        comercial_value: float
    ) -> Tuple[Exemptions, DutyRegime, Tuple[str, ...]]:
        """
        Exoneraciones efectivas, régimen y avisos.

        Consolidado Express por debajo del umbral activa
        obligacionesFiscales; Grupal Express activa siempre el descuento.
        """
        regime = config.regime_for(comercial_value)
        banners: List[str] = []
        effective = exemptions

        if regime == DutyRegime.EXPRESS_PERSONAL:
            effective = replace(effective, obligaciones_fiscales=True)
            if config.banner:
                banners.append(config.banner)
        elif regime == DutyRegime.GRUPAL_EXPRESS:
            effective = replace(effective, descuento_grupal_express=True)
            if config.banner:
                banners.append(config.banner)

        return effective, regime, tuple(banners)

    @staticmethod
    def calculate_fiscal_obligations(
        cif: float,
        config: ServiceTypeConfig,
        taxes: TaxPercentage,
        exemptions: Exemptions,
        values: DynamicValues
    ) -> FiscalObligations:
        """
        Obligaciones fiscales sobre el CIF.

        Aéreo:    base IGV/IPM = CIF + AD/VALOREM
        Marítimo: ISC = (CIF + AD/VALOREM) * ISC%
                  base IGV/IPM = CIF + AD/VALOREM + antidumping + ISC
                  percepción = (base + IGV + IPM) * percepción%
        Con obligacionesFiscales o totalDerechos todas las líneas valen 0.
        """
        ad_valorem = cif * taxes.ad_valorem_rate / 100

        if config.applies_additional_duties:
            antidumping = values.antidumping_gobierno * values.antidumping_cantidad
            isc = (cif + ad_valorem) * taxes.isc_rate / 100
        else:
            antidumping = 0.0
            isc = 0.0

        igv_base = cif + ad_valorem + antidumping + isc
        igv = igv_base * taxes.igv_rate / 100
        ipm = igv_base * taxes.ipm_rate / 100

        if config.applies_additional_duties:
            percepcion = (igv_base + igv + ipm) * taxes.percepcion_rate / 100
        else:
            percepcion = 0.0

        gross = {
            "adValorem": round_money(ad_valorem),
            "igv": round_money(igv),
            "ipm": round_money(ipm),
            "antidumping": round_money(antidumping),
            "isc": round_money(isc),
            "percepcion": round_money(percepcion),
        }
        gross_total = round_money(sum(gross.values()))

        exempt = exemptions.duties_exempt
        lines = {key: 0.0 for key in gross} if exempt else dict(gross)
        total_taxes = round_money(sum(lines.values()))

        return FiscalObligations(
            cif=round_money(cif),
            igv_base=round_money(igv_base),
            ad_valorem=lines["adValorem"],
            igv=lines["igv"],
            ipm=lines["ipm"],
            antidumping=AntidumpingResult(
                gobierno=values.antidumping_gobierno,
                cantidad=values.antidumping_cantidad,
                value=lines["antidumping"],
            ),
            isc=lines["isc"],
            percepcion=lines["percepcion"],
            total_taxes=total_taxes,
            gross_total_taxes=gross_total,
            total_exempted=round_money(gross_total - total_taxes),
            exempt=exempt,
            gross=gross,
        )

    @staticmethod
    def calculate_service_fees(
        config: ServiceTypeConfig,
        values: DynamicValues,
        exemptions: Exemptions,
        igv_rate: float,
        es_primera_compra: bool = False
    ) -> ServiceCalculations:
        """
        Servicios aplicables al tipo de servicio.
        subtotal = suma de líneas no exoneradas
        IGV servicios = subtotal * IGV%
        total = subtotal + IGV
        """
        lines = []
        for key, flag in config.service_fields:
            raw_amount = round_money(getattr(values, SERVICE_FIELD_SOURCES[key]))
            exempt = (
                es_primera_compra
                or key in config.exonerated_service_fields
                or exemptions.is_exempt(flag)
            )
            lines.append(ServiceLine(
                key=key,
                label=FIELD_LABELS[key],
                amount=0.0 if exempt else raw_amount,
                raw_amount=raw_amount,
                exempt=exempt,
            ))

        subtotal = round_money(sum(line.amount for line in lines))
        igv_services = round_money(subtotal * igv_rate / 100)

        return ServiceCalculations(
            lines=tuple(lines),
            subtotal_services=subtotal,
            igv_services=igv_services,
            total_services=round_money(subtotal + igv_services),
        )

    @classmethod
    def calculate_import_expenses(
        cls,
        config: ServiceTypeConfig,
        regime: DutyRegime,
        services: ServiceCalculations,
        fiscal: FiscalObligations,
        values: DynamicValues,
        flete: float,
        exemptions: Exemptions,
        es_primera_compra: bool = False
    ) -> ImportCosts:
        """
        Gastos de importación: servicios netos, IGV de servicios, línea de
        derechos del régimen (con descuento si corresponde) y líneas fijas.
        """
        lines: List[ExpenseLine] = [
            ExpenseLine(key=line.key, label=line.label, amount=line.amount)
            for line in services.lines
        ]
        lines.append(ExpenseLine(
            key="igvServicios",
            label=FIELD_LABELS["igvServicios"],
            amount=services.igv_services,
        ))

        duty_key, fixed_keys = config.expense_lines_for(regime)

        if duty_key is not None:
            gross = fiscal.total_taxes
            discounted = exemptions.descuento_grupal_express or es_primera_compra
            if discounted:
                percent = config.duty_discount_percent or cls.FIRST_PURCHASE_DISCOUNT_PERCENT
                amount = round_money(gross * (100 - percent) / 100)
            else:
                amount = gross
            lines.append(ExpenseLine(
                key=duty_key,
                label=FIELD_LABELS[duty_key],
                amount=amount,
                descuento=discounted,
                gross_amount=gross,
            ))

        fixed_amounts = {
            "fleteInternacional": flete,
            "desaduanaje": values.desaduanaje,
            "desadunajefleteseguro": values.desaduanaje + flete + values.seguro,
        }
        for key in fixed_keys:
            lines.append(ExpenseLine(
                key=key,
                label=FIELD_LABELS[key],
                amount=round_money(fixed_amounts[key]),
            ))

        return ImportCosts(
            regime=regime,
            lines=tuple(lines),
            total_expenses=round_money(sum(line.amount for line in lines)),
        )

    @staticmethod
    def allocate_import_costs(
        products: List[ProductData],
        total_import_costs: float
    ) -> Tuple[Tuple[ProductCosting, ...], AllocationTotals]:
        """
        Prorrateo proporcional del costo de importación.

        equivalencia = total_producto / valor_comercial * 100
        costo_importación = equivalencia / 100 * total_costos_importación
        costo_total = total_producto + costo_importación
        costo_unitario = costo_total / cantidad

        La proporción se usa sin redondear; solo se redondean las salidas.
        Las variantes heredan el costo unitario de su producto.
        """
        grand_total = sum(p.quoted_total for p in products)

        costings: List[ProductCosting] = []
        import_costs_sum = 0.0
        equivalence_sum = 0.0
        factor_m = 0.0

        for product in products:
            quantity = product.quoted_quantity
            total = product.quoted_total
            share = total / grand_total if grand_total > 0 else 0.0
            import_costs = share * total_import_costs
            total_cost = total + import_costs
            unit_cost = total_cost / quantity if quantity > 0 else 0.0

            equivalence_sum += share * 100
            rounded_import_costs = round_money(import_costs)
            import_costs_sum += rounded_import_costs

            variants = []
            for variant in product.variants:
                quoted = product.is_quoted and variant.is_quoted
                if quoted and factor_m == 0 and variant.price > 0 and unit_cost > 0:
                    factor_m = unit_cost / variant.price
                variants.append(VariantCosting(
                    variant_id=variant.variant_id,
                    quantity=variant.quantity,
                    price=variant.price,
                    is_quoted=quoted,
                    total=round_money(variant.total) if quoted else 0.0,
                    unit_cost=round_money(unit_cost) if quoted else 0.0,
                ))

            costings.append(ProductCosting(
                product_id=product.product_id,
                name=product.name,
                is_quoted=product.is_quoted,
                quantity=quantity,
                total=round_money(total),
                equivalence=share * 100,
                import_costs=rounded_import_costs,
                total_cost=round_money(total_cost),
                unit_cost=round_money(unit_cost),
                variants=tuple(variants),
            ))

        allocated = round_money(import_costs_sum) if grand_total > 0 else 0.0
        target = round_money(total_import_costs) if grand_total > 0 else 0.0

        totals = AllocationTotals(
            total_quantity=sum(c.quantity for c in costings),
            total_amount=round_money(grand_total),
            total_equivalence=equivalence_sum,
            total_import_costs=allocated,
            total_cost=round_money(sum(c.total_cost for c in costings)),
            # Artefacto de redondeo informado, nunca compensado
            rounding_difference=round_money(target - allocated),
            factor_m=round_money(factor_m, 4),
        )
        return tuple(costings), totals

    @staticmethod
    def compose_summary(
        comercial_value: float,
        total_expenses: float,
        tipo_cambio: float,
        tax_exempt: bool,
        banners: Tuple[str, ...] = ()
    ) -> QuoteSummary:
        """Inversión total = valor comercial + gastos de importación."""
        comercial_value = round_money(comercial_value)
        total_investment = round_money(comercial_value + total_expenses)
        return QuoteSummary(
            comercial_value=comercial_value,
            total_expenses=total_expenses,
            total_investment=total_investment,
            total_investment_soles=round_money(total_investment * tipo_cambio),
            tax_exempt=tax_exempt,
            banners=banners,
        )

    @classmethod
    def calculate_full_response(cls, data: CalculationInput) -> CalculationResult:
        """
        Calcula la respuesta de cotización completa.
        Esta es la función principal del motor.
        """
        config = get_service_config(data.service_type)
        values = data.dynamic_values

        # Agregado comercial
        derived = cls.aggregate_commercial(data.products, data.factors)
        commercial = cls.round_commercial(cls.apply_overrides(derived, values))

        # Exoneraciones efectivas y régimen
        exemptions, regime, banners = cls.resolve_exemptions(
            config, data.exemptions, commercial.comercial_value
        )
        if data.es_primera_compra:
            banners = banners + ("Primera compra: servicios exonerados y 50% de descuento en impuestos",)

        # CIF y derechos
        flete = round_money(cls.resolve_freight(config, values, commercial))
        cif = cls.calculate_cif(commercial.fob, flete, values.seguro)
        fiscal = cls.calculate_fiscal_obligations(
            cif, config, data.tax_percentage, exemptions, values
        )

        # Servicios
        services = cls.calculate_service_fees(
            config, values, exemptions, data.tax_percentage.igv_rate, data.es_primera_compra
        )

        # Gastos de importación
        import_costs = cls.calculate_import_expenses(
            config, regime, services, fiscal, values, flete, exemptions, data.es_primera_compra
        )

        # Prorrateo
        products, allocation = cls.allocate_import_costs(
            data.products, import_costs.total_expenses
        )

        # Resumen
        summary = cls.compose_summary(
            commercial.comercial_value,
            import_costs.total_expenses,
            values.tipo_cambio,
            fiscal.exempt,
            banners,
        )

        logger.debug(
            "Cálculo %s (%s): valor comercial=%.2f cif=%.2f impuestos=%.2f "
            "servicios=%.2f gastos=%.2f inversión=%.2f",
            config.service_type.value, regime.value, commercial.comercial_value,
            cif, fiscal.total_taxes, services.total_services,
            import_costs.total_expenses, summary.total_investment,
        )

        resolved_values = replace(
            values,
            comercial_value=commercial.comercial_value,
            fob=commercial.fob,
            cajas=commercial.cajas,
            kg=commercial.kg,
            ton=commercial.ton,
            volumen_cbm=commercial.volumen_cbm,
            flete=flete,
            cif=round_money(cif),
        )

        return CalculationResult(
            service_type=config.service_type,
            regime=regime,
            is_maritime=config.is_maritime,
            es_primera_compra=data.es_primera_compra,
            dynamic_values=resolved_values,
            tax_percentage=data.tax_percentage,
            exemptions=exemptions,
            commercial=commercial,
            flete=flete,
            cif=round_money(cif),
            fiscal_obligations=fiscal,
            service_calculations=services,
            import_costs=import_costs,
            products=products,
            allocation_totals=allocation,
            summary=summary,
        )


# Instancia global del motor
calculation_engine = ImportCostCalculationEngine()
