"""
Utilidades de validación.
Sanitización de montos del formulario y reglas de validación de la
respuesta de cotización al momento del envío.
"""
import math
from typing import Any, Dict, List, Mapping


def to_amount(value: Any) -> float:
    """
    Convierte un valor del formulario a un monto no negativo.
    Vacíos, textos no numéricos, NaN, infinitos y negativos valen 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return 0.0

    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0

    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0

    return number


def to_optional_amount(value: Any):
    """Igual que to_amount, pero conserva None (valor a derivar)."""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return to_amount(value)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_optional_number(value: Any):
    """Número tal cual (incluso negativo) o None si no es interpretable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def validate_quotation_response(payload: Mapping[str, Any]) -> List[str]:
    """
    Valida una respuesta de cotización antes del envío.

    Devuelve un mensaje por cada regla incumplida; la lista vacía indica
    que la respuesta puede enviarse. No lanza excepciones: el llamador
    decide si bloquea el envío.
    """
    errors: List[str] = []

    quotation_info: Mapping[str, Any] = payload.get("quotationInfo") or {}
    quotation_id = payload.get("quotationId") or quotation_info.get("quotationId")
    service_type = payload.get("serviceType") or quotation_info.get("serviceType")

    # Información básica
    if _is_blank(quotation_id):
        errors.append("ID de cotización es requerido")
    if _is_blank(quotation_info.get("correlative")):
        errors.append("Correlativo es requerido")
    if _is_blank(service_type):
        errors.append("Tipo de servicio es requerido")

    # Productos
    products: List[Dict[str, Any]] = payload.get("products") or []
    if len(products) == 0:
        errors.append("Debe haber al menos un producto")

    for product_index, product in enumerate(products, start=1):
        variants = product.get("variants") or []
        if len(variants) == 0:
            errors.append(f"Producto {product_index}: Debe tener al menos una variante")

        for variant_index, variant in enumerate(variants, start=1):
            prefix = f"Producto {product_index}, Variante {variant_index}"

            quantity = to_optional_number(variant.get("quantity"))
            if quantity is None or quantity <= 0:
                errors.append(f"{prefix}: Cantidad debe ser mayor a 0")

            price = to_optional_number(variant.get("price"))
            if price is None:
                errors.append(f"{prefix}: Precio es requerido")
            elif price < 0:
                errors.append(f"{prefix}: Precio no puede ser negativo")

    return errors
