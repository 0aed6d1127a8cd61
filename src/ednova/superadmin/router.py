"""Super-tenant endpoints: /{tenant}/api/v1/superadmin/*, served on the control tenant only."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.auth.dependencies import require_superadmin
from ednova.auth.jwt import create_access_token
from ednova.auth.password import PasswordStrengthError
from ednova.config import get_settings
from ednova.errors import NotFoundError
from ednova.superadmin import service
from ednova.superadmin.schemas import (
    BillingPaymentCreate,
    StatusUpdate,
    SuperAdminLoginRequest,
    SuperAdminTokenResponse,
    TenantAccountCreate,
    TenantAccountListResponse,
    TenantAccountResponse,
    TenantStatusResponse,
)
from ednova.tenancy.dependencies import get_db, get_tenant
from ednova.tenancy.registry import TenantHandle


async def require_control_tenant(handle: TenantHandle = Depends(get_tenant)) -> TenantHandle:
    if handle.name != get_settings().control_tenant:
        raise NotFoundError
    return handle


router = APIRouter(
    prefix="/{tenant}/api/v1/superadmin",
    tags=["Super Admin"],
    dependencies=[Depends(require_control_tenant)],
)


@router.post("/login", response_model=SuperAdminTokenResponse)
async def login(
    body: SuperAdminLoginRequest,
    handle: TenantHandle = Depends(get_tenant),
) -> SuperAdminTokenResponse:
    email = service.authenticate_superadmin(body.email, body.password)
    token = create_access_token(email, tenant=handle.name, role="SUPERADMIN", email=email)
    return SuperAdminTokenResponse(
        access_token=token,
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
        email=email,
    )


@router.get("/admins", response_model=TenantAccountListResponse, dependencies=[Depends(require_superadmin)])
async def list_admins(db: AsyncSession = Depends(get_db)) -> TenantAccountListResponse:
    accounts = await service.list_accounts(db)
    return TenantAccountListResponse(admins=[TenantAccountResponse.model_validate(a) for a in accounts])


@router.post(
    "/admins",
    response_model=TenantAccountResponse,
    status_code=201,
    dependencies=[Depends(require_superadmin)],
)
async def create_admin(body: TenantAccountCreate, db: AsyncSession = Depends(get_db)) -> TenantAccountResponse:
    try:
        account = await service.create_account(db, body.email, body.password, body.lmsname)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return TenantAccountResponse.model_validate(account)


@router.post(
    "/admins/{account_id}/status",
    response_model=TenantAccountResponse,
    dependencies=[Depends(require_superadmin)],
)
async def update_status(
    account_id: int,
    body: StatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> TenantAccountResponse:
    account = await service.set_status(db, account_id, body.status)
    await db.commit()
    return TenantAccountResponse.model_validate(account)


@router.post(
    "/admins/{account_id}/payments",
    response_model=TenantAccountResponse,
    dependencies=[Depends(require_superadmin)],
)
async def add_payment(
    account_id: int,
    body: BillingPaymentCreate,
    db: AsyncSession = Depends(get_db),
) -> TenantAccountResponse:
    account = await service.record_payment(db, account_id, body.note)
    await db.commit()
    return TenantAccountResponse.model_validate(account)


@router.get("/status/{tenant_id}", response_model=TenantStatusResponse)
async def tenant_status(tenant_id: str, db: AsyncSession = Depends(get_db)) -> TenantStatusResponse | JSONResponse:
    """Public: whether an LMS exists and is paid up."""
    account = await service.tenant_status(db, tenant_id)
    if account is None:
        return JSONResponse(
            status_code=404,
            content=TenantStatusResponse(valid=False, message="Tenant (LMS) not found.").model_dump(),
        )
    message = service.ACTIVE_MESSAGE if account.status else service.INACTIVE_MESSAGE
    return TenantStatusResponse(valid=True, status=account.status, message=message)
