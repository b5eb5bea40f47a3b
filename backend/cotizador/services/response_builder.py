"""
Construcción del DTO de respuesta de cotización.
Traduce un CalculationResult al JSON camelCase que consumen las vistas y
que se guarda como instantánea de la respuesta.
"""
from typing import Any, Dict, Optional

from .calculation_engine import (
    EXEMPTION_FLAGS,
    CalculationResult,
    DynamicValues,
    ProductCosting,
    TaxPercentage,
)


RESPONSE_TYPE_COMPLETE = "complete"

# Atributo de DynamicValues -> clave del DTO
_DYNAMIC_VALUE_KEYS = {
    "comercial_value": "comercialValue",
    "flete": "flete",
    "cajas": "cajas",
    "kg": "kg",
    "ton": "ton",
    "fob": "fob",
    "seguro": "seguro",
    "tipo_cambio": "tipoCambio",
    "volumen_cbm": "volumenCBM",
    "calculo_flete": "calculoFlete",
    "desaduanaje": "desaduanaje",
    "servicio_consolidado": "servicioConsolidado",
    "separacion_carga": "separacionCarga",
    "seguro_productos": "seguroProductos",
    "inspeccion_productos": "inspeccionProductos",
    "gestion_certificado": "gestionCertificado",
    "inspeccion_fabrica": "inspeccionFabrica",
    "transporte_local": "transporteLocal",
    "otros_servicios": "otrosServicios",
    "transporte_local_china_envio": "transporteLocalChinaEnvio",
    "transporte_local_cliente_envio": "transporteLocalClienteEnvio",
    "antidumping_gobierno": "antidumpingGobierno",
    "antidumping_cantidad": "antidumpingCantidad",
    "cif": "cif",
}

_TAX_PERCENTAGE_KEYS = {
    "ad_valorem_rate": "adValoremRate",
    "igv_rate": "igvRate",
    "ipm_rate": "ipmRate",
    "percepcion_rate": "percepcionRate",
    "isc_rate": "iscRate",
}


def dynamic_values_to_dict(values: DynamicValues) -> Dict[str, Any]:
    return {key: getattr(values, attr) for attr, key in _DYNAMIC_VALUE_KEYS.items()}


def tax_percentage_to_dict(taxes: TaxPercentage) -> Dict[str, float]:
    return {key: getattr(taxes, attr) for attr, key in _TAX_PERCENTAGE_KEYS.items()}


def _product_to_dict(product: ProductCosting) -> Dict[str, Any]:
    return {
        "productId": product.product_id,
        "name": product.name,
        "isQuoted": product.is_quoted,
        "quantity": product.quantity,
        "total": product.total,
        "pricing": {
            "unitCost": product.unit_cost,
            "importCosts": product.import_costs,
            "totalCost": product.total_cost,
            "equivalence": product.equivalence,
            "equivalenceDisplay": product.equivalence_display,
        },
        "variants": [
            {
                "variantId": variant.variant_id,
                "quantity": variant.quantity,
                "price": variant.price,
                "isQuoted": variant.is_quoted,
                "completePricing": {"unitCost": variant.unit_cost},
            }
            for variant in product.variants
        ],
    }


def build_calculation_dto(result: CalculationResult) -> Dict[str, Any]:
    """Bloques calculados de la respuesta (sin datos de la cotización)."""
    fiscal = result.fiscal_obligations
    services = result.service_calculations
    costs = result.import_costs
    summary = result.summary
    totals = result.allocation_totals

    expense_fields: Dict[str, Any] = {}
    for line in costs.lines:
        if line.key in ("addvaloremigvipm", "totalDerechos"):
            expense_fields[line.key] = {"descuento": line.descuento, "valor": line.amount}
        else:
            expense_fields[line.key] = line.amount

    return {
        "type": RESPONSE_TYPE_COMPLETE,
        "resumenInfo": {
            "totalCBM": result.dynamic_values.volumen_cbm,
            "totalWeight": result.dynamic_values.kg,
            "totalPrice": summary.comercial_value,
            "totalExpress": summary.total_investment,
            "totalQuantity": result.commercial.total_quantity,
        },
        "calculations": {
            "dynamicValues": dynamic_values_to_dict(result.dynamic_values),
            "taxPercentage": tax_percentage_to_dict(result.tax_percentage),
            "exemptions": {
                key: getattr(result.exemptions, attr)
                for key, attr in EXEMPTION_FLAGS.items()
            },
        },
        "serviceCalculations": {
            "serviceFields": services.service_fields,
            "exemptedFields": [line.key for line in services.lines if line.exempt],
            "subtotalServices": services.subtotal_services,
            "igvServices": services.igv_services,
            "totalServices": services.total_services,
        },
        "fiscalObligations": {
            "adValorem": fiscal.ad_valorem,
            "igv": fiscal.igv,
            "ipm": fiscal.ipm,
            "antidumping": {
                "antidumpingGobierno": fiscal.antidumping.gobierno,
                "antidumpingCantidad": fiscal.antidumping.cantidad,
                "antidumping": fiscal.antidumping.value,
            },
            "isc": fiscal.isc,
            "percepcion": fiscal.percepcion,
            "totalTaxes": fiscal.total_taxes,
            "grossTotalTaxes": fiscal.gross_total_taxes,
            "totalExempted": fiscal.total_exempted,
        },
        "importCosts": {
            "regime": costs.regime.value,
            "expenseFields": expense_fields,
            "totalExpenses": costs.total_expenses,
        },
        "allocationTotals": {
            "totalQuantity": totals.total_quantity,
            "totalAmount": totals.total_amount,
            "totalEquivalence": totals.total_equivalence,
            "totalImportCosts": totals.total_import_costs,
            "totalCost": totals.total_cost,
            "roundingDifference": totals.rounding_difference,
            "factorM": totals.factor_m,
        },
        "quoteSummary": {
            "comercialValue": summary.comercial_value,
            "totalExpenses": summary.total_expenses,
            "totalInvestment": summary.total_investment,
            "totalInvestmentSoles": summary.total_investment_soles,
            "taxExempt": summary.tax_exempt,
            "banners": list(summary.banners),
        },
    }


def build_response_dto(
    result: CalculationResult,
    quotation_id: Optional[str] = None,
    correlative: Optional[str] = None,
    advisor_id: Optional[str] = None,
    date: Optional[str] = None
) -> Dict[str, Any]:
    """DTO completo de la respuesta de cotización."""
    return {
        "quotationId": quotation_id,
        "serviceType": result.service_type.value,
        "esPrimeraCompra": result.es_primera_compra,
        "quotationInfo": {
            "quotationId": quotation_id,
            "correlative": correlative,
            "date": date,
            "advisorId": advisor_id,
        },
        "responseData": build_calculation_dto(result),
        "products": [_product_to_dict(product) for product in result.products],
    }
