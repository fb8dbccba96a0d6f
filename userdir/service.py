"""HTTP API exposing the user directory."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import DirectoryConfig, load_runtime_config
from .directory import UserDirectory
from .errors import DirectoryError, StoreUnavailable
from .models import Principal, Role, UserRecord
from .pagination import PageResult
from .security import build_principal_dependency, require_role
from .store import build_store

logger = logging.getLogger("userdir.service")


class CreateUserRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=1024)
    name: Optional[str] = Field(default=None, max_length=200)
    role: Optional[str] = Field(default=None, max_length=32)


class UserSummary(BaseModel):
    id: str
    email: str
    name: str
    role: str


class DeletedUserSummary(BaseModel):
    id: str
    email: str


class UserView(UserSummary):
    createdAt: datetime


class CreateUserResponse(BaseModel):
    message: str
    user: UserSummary


class DeleteUserResponse(BaseModel):
    message: str
    user: DeletedUserSummary


class UserPageResponse(BaseModel):
    items: List[UserView]
    page: int
    limit: int
    totalItems: int
    totalPages: int


def _record_to_view(record: UserRecord) -> UserView:
    return UserView(
        id=record.id,
        email=record.email,
        name=record.name,
        role=record.role,
        createdAt=record.created_at,
    )


def _page_to_response(result: PageResult[UserRecord]) -> UserPageResponse:
    return UserPageResponse(
        items=[_record_to_view(record) for record in result.items],
        page=result.page,
        limit=result.limit,
        totalItems=result.total_items,
        totalPages=result.total_pages,
    )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error(
            "User store unavailable while handling %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Server error"})

    @app.exception_handler(DirectoryError)
    async def directory_error(request: Request, exc: DirectoryError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def register_api_routes(
    app: FastAPI,
    directory: UserDirectory,
    *,
    current_principal: Callable[..., Principal],
) -> None:
    """Expose the user directory endpoints on the provided FastAPI application."""

    admin_principal = require_role(current_principal, Role.ADMIN)

    @app.get("/healthz")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # Declared before /users/{user_id} so "all" is not captured as an id.
    @app.get("/users/all", response_model=List[UserView])
    def list_all_users(principal: Principal = Depends(admin_principal)) -> List[UserView]:
        return [_record_to_view(record) for record in directory.list_all()]

    @app.get("/users/{user_id}", response_model=UserView)
    def get_user(user_id: str, principal: Principal = Depends(current_principal)) -> UserView:
        return _record_to_view(directory.get_by_id(user_id))

    @app.post("/users", status_code=status.HTTP_201_CREATED, response_model=CreateUserResponse)
    def create_user(
        request: CreateUserRequest,
        principal: Principal = Depends(admin_principal),
    ) -> CreateUserResponse:
        created = directory.create(
            email=request.email,
            password=request.password,
            name=request.name,
            role=request.role,
        )
        logger.info("User %s created user %s", principal.id, created.id)
        return CreateUserResponse(message="User created", user=UserSummary(**created.to_dict()))

    @app.delete("/users/{user_id}", response_model=DeleteUserResponse)
    def delete_user(user_id: str, principal: Principal = Depends(admin_principal)) -> DeleteUserResponse:
        removed = directory.delete(user_id, requester_id=principal.id)
        logger.info("User %s deleted user %s", principal.id, removed.id)
        return DeleteUserResponse(
            message="User deleted",
            user=DeletedUserSummary(**removed.to_dict()),
        )

    @app.get("/users", response_model=UserPageResponse)
    def list_users(
        page: Optional[str] = None,
        limit: Optional[str] = None,
        principal: Principal = Depends(admin_principal),
    ) -> UserPageResponse:
        return _page_to_response(directory.list_paged(page, limit))


def create_app(
    *,
    directory: UserDirectory | None = None,
    config: DirectoryConfig | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the user directory."""

    if directory is None:
        settings = config or load_runtime_config()
        directory = UserDirectory(build_store(settings))
        logger.info("Using %s user store", settings.store_backend)

    app = FastAPI(
        title="User Directory API",
        version="0.1.0",
        description="Create, fetch, list and delete directory users.",
    )
    app.state.directory = directory

    _register_error_handlers(app)
    register_api_routes(app, directory, current_principal=build_principal_dependency(directory))

    return app


__all__ = ["create_app", "register_api_routes"]
