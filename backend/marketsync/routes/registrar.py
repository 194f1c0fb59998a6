"""
MarketSync Backend — Registrar Routes
=======================================

What:  Creation endpoints for provider services, provider posts and
       consumer bookings. Each answers 201 with the new document id.
"""

from fastapi import APIRouter, Depends, status

from marketsync.dependencies import get_registrar
from marketsync.schemas.api import (
    BookingCreateRequest,
    CreatedResponse,
    ErrorResponse,
    PostCreateRequest,
    ServiceCreateRequest,
)
from marketsync.services.registrar_service import Registrar

router = APIRouter(prefix="/api", tags=["Registrar"])

_ERRORS = {
    400: {"description": "Invalid field", "model": ErrorResponse},
    404: {"description": "Unknown user", "model": ErrorResponse},
}


@router.post(
    "/services",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Register a provider service",
)
async def create_service(
    body: ServiceCreateRequest,
    registrar: Registrar = Depends(get_registrar),
) -> CreatedResponse:
    service_id = await registrar.create_service(
        body.provider_id, body.title, body.price, body.duration_minutes
    )
    return CreatedResponse(id=service_id)


@router.post(
    "/posts",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Publish a work photo to the catalog",
)
async def create_post(
    body: PostCreateRequest,
    registrar: Registrar = Depends(get_registrar),
) -> CreatedResponse:
    post_id = await registrar.create_post(
        body.provider_id, body.image_url, body.description, body.category
    )
    return CreatedResponse(id=post_id)


@router.post(
    "/bookings",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Book a provider service",
)
async def create_booking(
    body: BookingCreateRequest,
    registrar: Registrar = Depends(get_registrar),
) -> CreatedResponse:
    booking_id = await registrar.create_booking(
        body.consumer_id, body.provider_id, body.service, body.date, body.time
    )
    return CreatedResponse(id=booking_id)
