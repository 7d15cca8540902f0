"""User registration endpoint."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from innosistemas.api.deps import get_user_service
from innosistemas.models.user import Role
from innosistemas.schemas.user import UserRegistrationRequest, UserResponse
from innosistemas.services.user import DuplicateUserError, UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    request: UserRegistrationRequest,
    user_service: UserService = Depends(get_user_service),
) -> UserResponse:
    """Register a new user.

    Returns 409 Conflict if the email or identity document is already registered.
    """
    try:
        user = await user_service.register(
            name=request.name,
            email=request.email,
            identity_document=request.identity_document,
            password=request.password,
            role=Role(request.role),
        )
    except DuplicateUserError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return UserResponse.model_validate(user)
