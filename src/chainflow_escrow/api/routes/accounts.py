"""Account REST API routes: identity, KYC, balances and notifications.

Routes:
    POST   /api/v1/accounts/connect                 — Connect / provision an account
    GET    /api/v1/accounts                         — List profiles (admin view)
    PUT    /api/v1/accounts/{account}/profile       — Register or update a profile
    GET    /api/v1/accounts/{account}/profile       — Get a profile
    POST   /api/v1/accounts/{account}/kyc           — Set KYC status (ADMIN only)
    GET    /api/v1/accounts/{account}/balance       — Get balance
    GET    /api/v1/accounts/{account}/notifications — List notifications, newest first
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chainflow_escrow.api.deps import get_marketplace
from chainflow_escrow.domain.exceptions import AccountNotFoundError
from chainflow_escrow.schemas.api import (
    AccountResponse,
    ConnectRequest,
    RegisterProfileRequest,
    SetKycRequest,
)
from chainflow_escrow.schemas.records import Notification, UserProfile
from chainflow_escrow.services.marketplace_service import MarketplaceService

router = APIRouter(prefix="/api/v1/accounts", tags=["Accounts"])


@router.post(
    "/connect",
    response_model=AccountResponse,
    summary="Connect an account",
)
async def connect_account(
    request: ConnectRequest,
    svc: MarketplaceService = Depends(get_marketplace),
) -> AccountResponse:
    """Return the account id, crediting the seed balance on first contact."""
    account = await svc.connect_identity(request.account)
    return AccountResponse(account=account, balance=await svc.get_balance(account))


@router.get(
    "",
    response_model=list[UserProfile],
    summary="List registered profiles",
)
async def list_profiles(
    svc: MarketplaceService = Depends(get_marketplace),
) -> list[UserProfile]:
    return await svc.list_profiles()


@router.put(
    "/{account}/profile",
    response_model=UserProfile,
    summary="Register or update a profile",
)
async def register_profile(
    account: str,
    request: RegisterProfileRequest,
    svc: MarketplaceService = Depends(get_marketplace),
) -> UserProfile:
    profile = UserProfile(account=account, **request.model_dump())
    return await svc.register_profile(profile)


@router.get(
    "/{account}/profile",
    response_model=UserProfile,
    summary="Get a profile",
)
async def get_profile(
    account: str,
    svc: MarketplaceService = Depends(get_marketplace),
) -> UserProfile:
    profile = await svc.get_profile(account)
    if profile is None:
        raise AccountNotFoundError(account)
    return profile


@router.post(
    "/{account}/kyc",
    response_model=UserProfile,
    summary="Set KYC status",
)
async def set_kyc(
    account: str,
    request: SetKycRequest,
    svc: MarketplaceService = Depends(get_marketplace),
) -> UserProfile:
    """Admin review of an account's KYC documents."""
    return await svc.set_kyc(account, request.status, actor=request.actor)


@router.get(
    "/{account}/balance",
    response_model=AccountResponse,
    summary="Get balance",
)
async def get_balance(
    account: str,
    svc: MarketplaceService = Depends(get_marketplace),
) -> AccountResponse:
    return AccountResponse(account=account, balance=await svc.get_balance(account))


@router.get(
    "/{account}/notifications",
    response_model=list[Notification],
    summary="List notifications",
)
async def list_notifications(
    account: str,
    svc: MarketplaceService = Depends(get_marketplace),
) -> list[Notification]:
    return await svc.list_notifications(account)
