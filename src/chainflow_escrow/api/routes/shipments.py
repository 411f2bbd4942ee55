"""Shipment REST API routes.

Routes:
    POST   /api/v1/shipments                  — Open an escrowed P2P shipment
    GET    /api/v1/shipments                  — List shipments
    GET    /api/v1/shipments/{id}             — Get shipment details
    GET    /api/v1/shipments/{id}/status      — Lightweight status check
    POST   /api/v1/shipments/{id}/dispatch    — Seller dispatch (PENDING -> IN_TRANSIT)
    POST   /api/v1/shipments/{id}/advance     — Courier status update / settlement
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chainflow_escrow.api.deps import get_marketplace, idempotent
from chainflow_escrow.domain.exceptions import ShipmentNotFoundError
from chainflow_escrow.schemas.api import (
    AdvanceShipmentRequest,
    OpenShipmentRequest,
    ShipmentStatusResponse,
)
from chainflow_escrow.schemas.records import Shipment
from chainflow_escrow.services.marketplace_service import MarketplaceService

router = APIRouter(prefix="/api/v1/shipments", tags=["Shipments"])


@router.post(
    "",
    response_model=Shipment,
    status_code=201,
    summary="Open an escrowed shipment",
)
async def open_shipment(
    request: OpenShipmentRequest,
    svc: MarketplaceService = Depends(get_marketplace),
) -> Shipment:
    """Lock ``price`` from the sender and create the shipment in PENDING."""
    details = request.model_dump(exclude={"sender", "receiver", "courier", "price", "idempotency_key"})
    async with idempotent(request.idempotency_key):
        return await svc.open_shipment(
            request.sender,
            request.receiver,
            request.courier,
            request.price,
            **details,
        )


@router.get(
    "",
    response_model=list[Shipment],
    summary="List shipments",
)
async def list_shipments(
    svc: MarketplaceService = Depends(get_marketplace),
) -> list[Shipment]:
    return await svc.list_shipments()


@router.get(
    "/{shipment_id}",
    response_model=Shipment,
    summary="Get shipment details",
)
async def get_shipment(
    shipment_id: str,
    svc: MarketplaceService = Depends(get_marketplace),
) -> Shipment:
    shipment = await svc.get_shipment(shipment_id)
    if shipment is None:
        raise ShipmentNotFoundError(shipment_id)
    return shipment


@router.get(
    "/{shipment_id}/status",
    response_model=ShipmentStatusResponse,
    summary="Get lightweight status check",
)
async def get_status(
    shipment_id: str,
    svc: MarketplaceService = Depends(get_marketplace),
) -> ShipmentStatusResponse:
    """Return the current status and the courier updates allowed next."""
    shipment = await svc.get_shipment(shipment_id)
    if shipment is None:
        raise ShipmentNotFoundError(shipment_id)
    allowed_targets = await svc.shipments.allowed_targets(shipment.id)
    return ShipmentStatusResponse(
        shipment_id=shipment.id,
        status=shipment.status,
        payment_status=shipment.payment_status.value,
        allowed_targets=allowed_targets,
    )


@router.post(
    "/{shipment_id}/dispatch",
    response_model=Shipment,
    summary="Dispatch a shipment",
)
async def dispatch_shipment(
    shipment_id: str,
    svc: MarketplaceService = Depends(get_marketplace),
) -> Shipment:
    return await svc.dispatch_shipment(shipment_id)


@router.post(
    "/{shipment_id}/advance",
    response_model=Shipment,
    summary="Record a courier status update",
)
async def advance_shipment(
    shipment_id: str,
    request: AdvanceShipmentRequest,
    svc: MarketplaceService = Depends(get_marketplace),
) -> Shipment:
    """DELIVERED releases the escrow to the sender; CANCELLED refunds the receiver."""
    return await svc.advance_shipment(
        shipment_id,
        request.status,
        request.location,
        request.message,
    )
