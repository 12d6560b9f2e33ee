"""FastAPI router for Hookwire API endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status

from hookwire import __version__
from hookwire.delivery import BulkRetryResult
from hookwire.exceptions import NotFoundError
from hookwire.models import DeliveryOutcome
from hookwire.monitor import (
    DashboardSummary,
    EndpointHealth,
    EndpointStats,
    ExportFormat,
    PerformanceReport,
)
from hookwire.service import HookwireService

from .auth import AuthenticatedUser, BearerCredentials, ensure_admin, resolve_user
from .schemas import (
    BulkRetryRequest,
    DeliveryHistoryResponse,
    DeliveryTestRequest,
    EndpointListResponse,
    EndpointLogsResponse,
    EndpointResponse,
    FailedDeliveriesResponse,
    HealthResponse,
    RegisterEndpointRequest,
    RegisterEndpointResponse,
    RotateSecretResponse,
    UpdateEndpointRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: HookwireService | None = None

EXPORT_MEDIA_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.CSV: "text/csv",
}


def set_service(service: HookwireService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> HookwireService:
    """Dependency to get the HookwireService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[HookwireService, Depends(get_service)]


async def get_current_user(
    request: Request,
    service: ServiceDep,
    credentials: BearerCredentials,
) -> AuthenticatedUser:
    return resolve_user(service.settings, request, credentials)


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]


async def get_admin_user(user: CurrentUser) -> AuthenticatedUser:
    return ensure_admin(user)


AdminUser = Annotated[AuthenticatedUser, Depends(get_admin_user)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health.

    Reports whether the service is initialized, which storage backend it
    uses and whether the retry scheduler is running.
    """
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__)
    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_backend=_service.settings.storage_backend,
        scheduler_running=_service.scheduler.running,
    )


# Endpoint management


@router.post(
    "/webhooks",
    response_model=RegisterEndpointResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def register_endpoint(
    request: RegisterEndpointRequest,
    service: ServiceDep,
    user: CurrentUser,
) -> RegisterEndpointResponse:
    """Register a webhook endpoint.

    The response carries the signing secret. It is the only time the
    secret is shown; use rotate-secret to obtain a new one.
    """
    registration = await service.registry.register(
        owner_id=user.user_id,
        url=request.url,
        events=request.events,
        retry_policy=request.retry_policy,
        headers=request.headers,
        description=request.description,
    )
    return RegisterEndpointResponse(
        endpoint=EndpointResponse.from_endpoint(registration.endpoint),
        secret=registration.secret,
    )


@router.get("/webhooks", response_model=EndpointListResponse, tags=["webhooks"])
async def list_endpoints(
    service: ServiceDep,
    user: CurrentUser,
    include_all: Annotated[bool, Query(alias="all")] = False,
) -> EndpointListResponse:
    """List the requester's endpoints, or every endpoint for admins with ?all=true."""
    endpoints = await service.registry.list_endpoints(
        user.user_id, is_admin=user.is_admin, include_all=include_all
    )
    return EndpointListResponse(
        endpoints=[EndpointResponse.from_endpoint(ep) for ep in endpoints],
        count=len(endpoints),
    )


@router.get("/webhooks/{endpoint_id}", response_model=EndpointResponse, tags=["webhooks"])
async def get_endpoint(
    endpoint_id: str, service: ServiceDep, user: CurrentUser
) -> EndpointResponse:
    endpoint = await service.registry.get(endpoint_id, user.user_id, is_admin=user.is_admin)
    return EndpointResponse.from_endpoint(endpoint)


@router.patch("/webhooks/{endpoint_id}", response_model=EndpointResponse, tags=["webhooks"])
async def update_endpoint(
    endpoint_id: str,
    request: UpdateEndpointRequest,
    service: ServiceDep,
    user: CurrentUser,
) -> EndpointResponse:
    """Partially update an endpoint. Only fields present in the body change."""
    endpoint = await service.registry.update(
        endpoint_id,
        user.user_id,
        request.model_dump(exclude_unset=True),
        is_admin=user.is_admin,
    )
    return EndpointResponse.from_endpoint(endpoint)


@router.delete(
    "/webhooks/{endpoint_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_endpoint(endpoint_id: str, service: ServiceDep, user: CurrentUser) -> Response:
    await service.registry.delete(endpoint_id, user.user_id, is_admin=user.is_admin)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/webhooks/{endpoint_id}/rotate-secret",
    response_model=RotateSecretResponse,
    tags=["webhooks"],
)
async def rotate_secret(
    endpoint_id: str, service: ServiceDep, user: CurrentUser
) -> RotateSecretResponse:
    """Replace the signing secret. The new secret is returned once."""
    secret = await service.registry.rotate_secret(
        endpoint_id, user.user_id, is_admin=user.is_admin
    )
    return RotateSecretResponse(endpoint_id=endpoint_id, secret=secret)


# Deliveries and monitoring


@router.get(
    "/webhooks/{endpoint_id}/deliveries",
    response_model=DeliveryHistoryResponse,
    tags=["deliveries"],
)
async def delivery_history(
    endpoint_id: str,
    service: ServiceDep,
    user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> DeliveryHistoryResponse:
    """Recent delivery events of an endpoint with their attempts, newest first."""
    await service.registry.get(endpoint_id, user.user_id, is_admin=user.is_admin)
    records = await service.monitor.delivery_history(endpoint_id, limit=limit)
    return DeliveryHistoryResponse(endpoint_id=endpoint_id, deliveries=records, count=len(records))


@router.get("/webhooks/{endpoint_id}/stats", response_model=EndpointStats, tags=["monitoring"])
async def endpoint_stats(
    endpoint_id: str,
    service: ServiceDep,
    user: CurrentUser,
    window_hours: Annotated[int | None, Query(ge=1, le=24 * 90)] = None,
) -> EndpointStats:
    """Delivery statistics, over all history or the trailing ``window_hours``."""
    await service.registry.get(endpoint_id, user.user_id, is_admin=user.is_admin)
    window = timedelta(hours=window_hours) if window_hours is not None else None
    return await service.monitor.endpoint_stats(endpoint_id, window=window)


@router.get(
    "/webhooks/{endpoint_id}/logs",
    response_model=EndpointLogsResponse,
    tags=["monitoring"],
)
async def endpoint_logs(
    endpoint_id: str,
    service: ServiceDep,
    user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> EndpointLogsResponse:
    await service.registry.get(endpoint_id, user.user_id, is_admin=user.is_admin)
    logs = await service.monitor.endpoint_logs(endpoint_id, limit=limit)
    return EndpointLogsResponse(endpoint_id=endpoint_id, logs=logs, count=len(logs))


@router.get(
    "/webhooks/{endpoint_id}/health",
    response_model=EndpointHealth,
    tags=["monitoring"],
)
async def endpoint_health(
    endpoint_id: str, service: ServiceDep, user: CurrentUser
) -> EndpointHealth:
    """Health classification with recommendations for the endpoint owner."""
    await service.registry.get(endpoint_id, user.user_id, is_admin=user.is_admin)
    return await service.monitor.health(endpoint_id)


@router.post(
    "/webhooks/{endpoint_id}/test",
    response_model=DeliveryOutcome,
    tags=["deliveries"],
)
async def test_endpoint(
    endpoint_id: str,
    service: ServiceDep,
    user: CurrentUser,
    request: Annotated[DeliveryTestRequest | None, Body()] = None,
) -> DeliveryOutcome:
    """Send a one-off signed test delivery and return its outcome."""
    request = request or DeliveryTestRequest()
    return await service.engine.test_delivery(
        endpoint_id,
        user.user_id,
        is_admin=user.is_admin,
        event_type=request.event_type,
        payload=request.payload,
    )


@router.post(
    "/webhooks/{endpoint_id}/events/{event_id}/retry",
    response_model=DeliveryOutcome,
    tags=["deliveries"],
)
async def retry_event(
    endpoint_id: str,
    event_id: str,
    service: ServiceDep,
    user: CurrentUser,
) -> DeliveryOutcome:
    """Manually retry one delivery event.

    The attempt is recorded as manual and does not count toward the
    endpoint's retry budget.
    """
    await service.registry.get(endpoint_id, user.user_id, is_admin=user.is_admin)
    event = await service.store.get_event(event_id)
    if event is None or event.endpoint_id != endpoint_id:
        raise NotFoundError("event", event_id)
    return await service.engine.retry_event(event_id, user.user_id, is_admin=user.is_admin)


# Administration


@router.get("/admin/dashboard", response_model=DashboardSummary, tags=["admin"])
async def dashboard(service: ServiceDep, admin: AdminUser) -> DashboardSummary:
    return await service.monitor.dashboard_summary()


@router.get(
    "/admin/reports/performance",
    response_model=PerformanceReport,
    tags=["admin"],
)
async def performance_report(
    service: ServiceDep,
    admin: AdminUser,
    start: datetime,
    end: datetime,
    endpoint_id: str | None = None,
) -> PerformanceReport:
    """Delivery performance for the half-open window ``[start, end)``."""
    return await service.monitor.performance_report(start, end, endpoint_id=endpoint_id)


@router.get(
    "/admin/failed-deliveries",
    response_model=FailedDeliveriesResponse,
    tags=["admin"],
)
async def failed_deliveries(
    service: ServiceDep,
    admin: AdminUser,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> FailedDeliveriesResponse:
    deliveries = await service.monitor.failed_deliveries(limit=limit)
    return FailedDeliveriesResponse(deliveries=deliveries, count=len(deliveries))


@router.post("/admin/retry", response_model=BulkRetryResult, tags=["admin"])
async def bulk_retry(
    request: BulkRetryRequest,
    service: ServiceDep,
    admin: AdminUser,
) -> BulkRetryResult:
    """Retry specific events, or up to ``limit`` events in a status."""
    logger.info("Bulk retry requested by %s", admin.user_id)
    return await service.engine.bulk_retry(
        event_ids=request.event_ids, status=request.status, limit=request.limit
    )


@router.get("/admin/export", tags=["admin"])
async def export_attempts(
    service: ServiceDep,
    admin: AdminUser,
    start: datetime,
    end: datetime,
    fmt: Annotated[str, Query(alias="format")] = ExportFormat.JSON.value,
    endpoint_id: str | None = None,
) -> Response:
    """Download attempt history in ``[start, end)`` as JSON or CSV."""
    content = await service.monitor.export(fmt, start, end, endpoint_id=endpoint_id)
    export_format = ExportFormat(fmt.lower())
    filename = f"webhook_attempts_{start:%Y%m%d}_{end:%Y%m%d}.{export_format.value}"
    return Response(
        content=content,
        media_type=EXPORT_MEDIA_TYPES[export_format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
