"""
Endpoints de respuestas de cotización.
Recalculo en vivo del formulario, validación previa al envío, versiones
persistidas y ciclo de vida de cada respuesta.
"""
import logging
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...core.config import settings
from ...db.database import get_db
from ...models.models import QuotationResponse, ResponseStatus, AuditLog
from ...schemas.schemas import (
    CalculationRequest, QuotationResponseCreate, StatusUpdate,
    ValidationResult, QuotationResponseSummary, QuotationResponseOut
)
from ...services.calculation_engine import (
    ImportCostCalculationEngine, CalculationInput, ProductData, VariantData,
    DynamicValues, TaxPercentage, Exemptions, EstimationFactors
)
from ...services.response_builder import build_response_dto
from ...utils.validators import validate_quotation_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotation-responses", tags=["Respuestas de Cotización"])


def to_calculation_input(data: CalculationRequest) -> CalculationInput:
    """Convierte la solicitud al formato del motor de cálculo."""
    products = [
        ProductData(
            product_id=p.product_id,
            name=p.name,
            is_quoted=p.is_quoted,
            cajas=p.cajas,
            peso_kg=p.peso_kg,
            volumen_cbm=p.volumen_cbm,
            variants=[
                VariantData(
                    variant_id=v.variant_id,
                    quantity=v.quantity,
                    price=v.price,
                    is_quoted=v.is_quoted,
                    size=v.size,
                    presentation=v.presentation,
                    model=v.model,
                    color=v.color,
                )
                for v in p.variants
            ],
        )
        for p in data.products
    ]

    calculations = data.calculations
    return CalculationInput(
        service_type=data.service_type,
        products=products,
        dynamic_values=DynamicValues(**calculations.dynamic_values.model_dump()),
        tax_percentage=TaxPercentage(**calculations.tax_percentage.model_dump()),
        exemptions=Exemptions(**calculations.exemptions.model_dump()),
        es_primera_compra=data.es_primera_compra,
        factors=EstimationFactors(),
    )


def _submission_payload(data: QuotationResponseCreate, quotation_id: str = None) -> Dict[str, Any]:
    payload = data.model_dump(by_alias=True, mode="json")
    if quotation_id is not None:
        payload["quotationId"] = quotation_id
    return payload


def _audit(db: Session, request: Request, action: str, response: QuotationResponse,
           old_values: dict = None, new_values: dict = None) -> None:
    db.add(AuditLog(
        action=action,
        entity_type="QuotationResponse",
        entity_id=response.id,
        old_values=old_values,
        new_values=new_values,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    ))


def next_version(db: Session, quotation_id: str) -> int:
    """Siguiente número de versión de la cotización."""
    last_version = db.query(func.max(QuotationResponse.version)).filter(
        QuotationResponse.quotation_id == quotation_id
    ).scalar()
    return (last_version or 0) + 1


def _get_response_or_404(db: Session, response_id: int) -> QuotationResponse:
    response = db.query(QuotationResponse).filter(
        QuotationResponse.id == response_id
    ).first()
    if not response:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Respuesta de cotización no encontrada"
        )
    return response


@router.post("/calculate")
async def calculate_response(data: CalculationRequest) -> Dict[str, Any]:
    """
    Recalcula la respuesta a partir del formulario.
    Montos vacíos o inválidos valen 0; nunca falla por entrada parcial.
    """
    result = ImportCostCalculationEngine.calculate_full_response(to_calculation_input(data))
    return build_response_dto(result)


@router.post("/validate", response_model=ValidationResult)
async def validate_response(data: QuotationResponseCreate):
    """Revisa las reglas de envío y devuelve un mensaje por regla incumplida."""
    errors = validate_quotation_response(_submission_payload(data))
    return ValidationResult(is_valid=not errors, errors=errors)


@router.post(
    "/quotation/{quotation_id}",
    response_model=QuotationResponseOut,
    status_code=status.HTTP_201_CREATED
)
async def submit_response(
    quotation_id: str,
    data: QuotationResponseCreate,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Envía una respuesta de cotización.
    Se valida, se recalcula en el servidor y se guarda como versión nueva;
    la versión vigente anterior queda reemplazada.
    """
    errors = validate_quotation_response(_submission_payload(data, quotation_id))
    if errors:
        raise HTTPException(
            status_code=422,
            detail={"message": "La respuesta de cotización no es válida", "errors": errors}
        )

    result = ImportCostCalculationEngine.calculate_full_response(to_calculation_input(data))
    info = data.quotation_info
    snapshot = build_response_dto(
        result,
        quotation_id=quotation_id,
        correlative=info.correlative,
        advisor_id=info.advisor_id,
        date=info.date,
    )

    version = next_version(db, quotation_id)

    db.query(QuotationResponse).filter(
        QuotationResponse.quotation_id == quotation_id,
        QuotationResponse.is_current.is_(True)
    ).update({QuotationResponse.is_current: False}, synchronize_session=False)

    response = QuotationResponse(
        quotation_id=quotation_id,
        correlative=info.correlative,
        service_type=result.service_type.value,
        advisor_id=info.advisor_id,
        version=version,
        is_current=True,
        status=ResponseStatus.BORRADOR,
        snapshot=snapshot,
        total_investment=result.summary.total_investment,
    )
    db.add(response)
    try:
        db.flush()
    except IntegrityError:
        # Otro envío simultáneo tomó el mismo número de versión
        db.rollback()
        logger.warning("Versión %d de la cotización %s ya existe", version, quotation_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Otra respuesta para esta cotización se guardó al mismo tiempo; reintente el envío"
        )

    _audit(db, request, "CREATE", response, new_values={
        "quotation_id": quotation_id,
        "version": response.version,
        "total_investment": response.total_investment,
    })

    db.commit()
    db.refresh(response)

    logger.info(
        "Respuesta de cotización %s guardada como versión %d (inversión total %.2f)",
        quotation_id, response.version, response.total_investment
    )
    return response


@router.get("/quotation/{quotation_id}", response_model=List[QuotationResponseSummary])
async def list_responses(
    quotation_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1),
    db: Session = Depends(get_db)
):
    """Lista las versiones de una cotización, de la más reciente a la más antigua."""
    limit = min(limit, settings.MAX_PAGE_SIZE)
    return db.query(QuotationResponse).filter(
        QuotationResponse.quotation_id == quotation_id
    ).order_by(QuotationResponse.version.desc()).offset(skip).limit(limit).all()


@router.get("/{response_id}", response_model=QuotationResponseOut)
async def get_response(response_id: int, db: Session = Depends(get_db)):
    """Obtiene una versión con su instantánea."""
    return _get_response_or_404(db, response_id)


@router.patch("/{response_id}/status", response_model=QuotationResponseOut)
async def update_status(
    response_id: int,
    data: StatusUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Cambia el estado de una respuesta.
    borrador -> enviada -> aprobada | observada; observada -> enviada.
    Las versiones reemplazadas no cambian de estado.
    """
    response = _get_response_or_404(db, response_id)

    if not response.is_current:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="La versión fue reemplazada por una respuesta más reciente"
        )

    new_status = ResponseStatus(data.status.value)
    if not response.can_transition_to(new_status):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Transición no permitida: {response.status.value} -> {new_status.value}"
        )

    old_status = response.status
    response.status = new_status
    if data.notes is not None:
        response.notes = data.notes

    _audit(db, request, "STATUS_CHANGE", response,
           old_values={"status": old_status.value},
           new_values={"status": new_status.value, "notes": data.notes})

    db.commit()
    db.refresh(response)

    logger.info(
        "Respuesta %d de la cotización %s: %s -> %s",
        response.id, response.quotation_id, old_status.value, new_status.value
    )
    return response
