"""Catalog REST API routes.

Routes:
    GET    /api/v1/catalog                  — List listings
    POST   /api/v1/catalog                  — Publish a listing
    DELETE /api/v1/catalog/{item_id}        — Remove a listing (seller only)
    POST   /api/v1/catalog/{item_id}/purchase — Buy a listing into escrow
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from chainflow_escrow.api.deps import get_marketplace, idempotent
from chainflow_escrow.schemas.api import AddListingRequest, PurchaseRequest
from chainflow_escrow.schemas.records import CatalogListing, Shipment
from chainflow_escrow.services.marketplace_service import MarketplaceService

router = APIRouter(prefix="/api/v1/catalog", tags=["Catalog"])


@router.get(
    "",
    response_model=list[CatalogListing],
    summary="List catalog items",
)
async def list_catalog(
    svc: MarketplaceService = Depends(get_marketplace),
) -> list[CatalogListing]:
    return await svc.list_catalog()


@router.post(
    "",
    response_model=CatalogListing,
    status_code=201,
    summary="Publish a listing",
)
async def add_listing(
    request: AddListingRequest,
    svc: MarketplaceService = Depends(get_marketplace),
) -> CatalogListing:
    listing = CatalogListing(**request.model_dump())
    return await svc.add_catalog_item(listing)


@router.delete(
    "/{item_id}",
    status_code=204,
    summary="Remove a listing",
)
async def remove_listing(
    item_id: str,
    caller: str = Query(..., min_length=1, description="Account asking for removal"),
    svc: MarketplaceService = Depends(get_marketplace),
) -> Response:
    await svc.remove_catalog_item(item_id, caller)
    return Response(status_code=204)


@router.post(
    "/{item_id}/purchase",
    response_model=Shipment,
    status_code=201,
    summary="Purchase a listing",
)
async def purchase_item(
    item_id: str,
    request: PurchaseRequest,
    svc: MarketplaceService = Depends(get_marketplace),
) -> Shipment:
    """Debit the buyer and open an escrowed order. Seller is paid on delivery."""
    async with idempotent(request.idempotency_key):
        return await svc.purchase_item(item_id, request.buyer)
