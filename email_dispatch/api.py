"""
FastAPI application factory for the email dispatch service.

The module exposes a `create_app` function that builds the REST API used to
submit emails and browse the dispatch history. Authentication is enforced
through an optional API token carried in the ``X-API-Token`` header.
"""

from typing import AsyncContextManager, Callable, List
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader

from .core import DEFAULT_DIRECTION, DEFAULT_PAGE_SIZE, DEFAULT_SORT, EmailDispatchCore, EmailValidationError
from .logger import get_logger
from .models import EmailPage, EmailRecord, EmailRequest
from .persistence import PersistenceError

API_TOKEN_HEADER_NAME = "X-API-Token"
MAX_PAGE_SIZE = 2000
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)
logger = get_logger("EmailDispatch.api")


async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header.

    If a token has been configured through :func:`create_app` and a request
    provides either a missing or different value, a ``401`` error is raised.
    When no token is configured the dependency is effectively bypassed.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or api_token != expected:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


def get_service(request: Request) -> EmailDispatchCore:
    svc = getattr(request.app.state, "service", None)
    if svc is None:
        raise HTTPException(500, "Service not initialized")
    return svc


def create_app(
    svc: EmailDispatchCore,
    api_token: str | None = None,
    lifespan: Callable[[FastAPI], AsyncContextManager] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    svc:
        Instance of :class:`email_dispatch.core.EmailDispatchCore` that
        implements send-and-record and the history queries.
    api_token:
        Optional secret used to protect every endpoint except ``/health``.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn or any ASGI
        server.
    """
    api = FastAPI(title="Email Dispatch Service", lifespan=lifespan)
    api.state.service = svc
    api.state.api_token = api_token

    @api.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log validation errors and report them as a client error."""
        logger.warning("Validation error on %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    @api.exception_handler(EmailValidationError)
    async def email_validation_handler(request: Request, exc: EmailValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @api.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Email was not recorded"})

    @api.get("/health")
    async def health():
        """Health check endpoint for container monitoring (no authentication required)."""
        return {"status": "ok"}

    @api.post(
        "/sending-email",
        response_model=EmailRecord,
        status_code=status.HTTP_201_CREATED,
        dependencies=[auth_dependency],
    )
    async def sending_email(payload: EmailRequest, service: EmailDispatchCore = Depends(get_service)):
        """Send one email and return the stored record, whatever the delivery outcome."""
        return await service.send_and_record(payload)

    @api.get("/emails", response_model=EmailPage, dependencies=[auth_dependency])
    async def get_emails(
        page: int = Query(0, ge=0),
        size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        sort: str = Query(DEFAULT_SORT),
        direction: str = Query(DEFAULT_DIRECTION),
        service: EmailDispatchCore = Depends(get_service),
    ):
        """Return one page of the dispatch history, newest ids first by default."""
        return await service.list_paged(page=page, size=size, sort=sort, direction=direction)

    @api.get("/emails/all", response_model=List[EmailRecord], dependencies=[auth_dependency])
    async def get_all_emails(service: EmailDispatchCore = Depends(get_service)):
        """Return the whole dispatch history."""
        return await service.list_all()

    @api.get("/emails/{email_id}", response_model=EmailRecord, dependencies=[auth_dependency])
    async def get_email_by_id(email_id: UUID, service: EmailDispatchCore = Depends(get_service)):
        record = await service.find_by_id(str(email_id))
        if record is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Email not found.")
        return record

    @api.get("/metrics", dependencies=[auth_dependency])
    async def metrics(service: EmailDispatchCore = Depends(get_service)):
        """Expose Prometheus metrics collected by the dispatcher."""
        return Response(content=service.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    return api
