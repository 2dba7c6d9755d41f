import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import TokenInvalid, TokenMissing, TokenService, read_cookie_token
from config import DEFAULT_SECRET_KEY, Settings
from database import DocumentStore, StoreError, create_store, serialize_document
from logging_config import setup_logging
from schemas import (
    BOOKINGS,
    SERVICE_PROJECTION,
    SERVICES,
    BookingStatusUpdate,
    DeleteResult,
    IdentityPayload,
    InsertResult,
    Message,
    Success,
    UpdateResult,
)

logger = logging.getLogger("car_doctor")

TOKEN_COOKIE = "token"


# ----- Dependencies -----

def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def log_request(request: Request) -> None:
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    logger.info("Request: %s %s", request.method, url)


def verify_token(request: Request, tokens: TokenService = Depends(get_token_service)) -> Dict[str, Any]:
    try:
        claims = tokens.verify(read_cookie_token(request.cookies, TOKEN_COOKIE))
    except TokenMissing:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized access")
    except TokenInvalid as exc:
        logger.info("JWT rejected: %s", exc)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    request.state.user = claims
    return claims


# ----- Error boundary -----

async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        {"message": f"Invalid request ({details})"},
        status_code=422,
    )


STORE_FAILURE_MESSAGES = {
    "list_services": "Failed to retrieve services",
    "get_service": "Failed to retrieve service",
    "create_booking": "Failed to create booking",
    "list_bookings": "Failed to retrieve bookings",
    "update_booking": "Failed to update booking",
    "delete_booking": "Failed to delete booking",
}


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    route = request.scope.get("route")
    message = STORE_FAILURE_MESSAGES.get(getattr(route, "name", None), "Database operation failed")
    logger.error("%s (%s %s): %s", message, request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse({"message": message}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


# ----- App factory -----

def create_app(store: Optional[DocumentStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)
    if settings.secret_key == DEFAULT_SECRET_KEY:
        logger.warning("SECRET_ACCESS_TOKEN is not set, using the development secret")

    if store is None:
        store = create_store(settings.store_backend, settings.mongo_uri, settings.db_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await app.state.store.connect()
        except StoreError:
            logger.exception("Document store connection failed")
        yield
        await app.state.store.close()

    app = FastAPI(title="Car Doctor API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.tokens = TokenService(settings.secret_key, settings.algorithm, settings.token_expire_minutes)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StoreError, store_error_handler)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "Doctor is running"

    # Auth
    @app.post("/jwt", response_model=Success, dependencies=[Depends(log_request)])
    async def issue_token(
        payload: IdentityPayload,
        response: Response,
        tokens: TokenService = Depends(get_token_service),
    ):
        token = tokens.issue(payload.model_dump())
        response.set_cookie(
            TOKEN_COOKIE,
            token,
            httponly=True,
            secure=app.state.settings.cookie_secure,
        )
        return Success()

    @app.post("/logout", response_model=Success)
    async def logout(response: Response):
        logger.info("Logging out user")
        response.delete_cookie(TOKEN_COOKIE)
        return Success()

    # Services
    @app.get("/services", dependencies=[Depends(log_request)])
    async def list_services(store: DocumentStore = Depends(get_store)) -> List[Dict[str, Any]]:
        services = await store.find(SERVICES)
        return [serialize_document(service) for service in services]

    @app.get("/services/{service_id}", responses={404: {"model": Message}})
    async def get_service(service_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
        service = await store.find_by_id(SERVICES, service_id, projection=SERVICE_PROJECTION)
        if service is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Service not found")
        return serialize_document(service)

    # Bookings
    @app.post("/bookings", response_model=InsertResult)
    async def create_booking(
        booking: Dict[str, Any] = Body(...),
        store: DocumentStore = Depends(get_store),
    ):
        inserted_id = await store.insert(BOOKINGS, booking)
        return InsertResult(inserted_id=str(inserted_id))

    @app.get("/bookings", dependencies=[Depends(log_request)], responses={401: {"model": Message}, 403: {"model": Message}})
    async def list_bookings(
        email: Optional[str] = None,
        user: Dict[str, Any] = Depends(verify_token),
        store: DocumentStore = Depends(get_store),
    ) -> List[Dict[str, Any]]:
        logger.debug("Token owner info: %s", user)
        if email is None or user.get("email") != email:
            raise HTTPException(status.HTTP_403_FORBIDDEN, "Forbidden access")
        bookings = await store.find(BOOKINGS, {"email": email})
        return [serialize_document(booking) for booking in bookings]

    @app.patch("/bookings/{booking_id}", response_model=UpdateResult)
    async def update_booking(booking_id: str, data: BookingStatusUpdate, store: DocumentStore = Depends(get_store)):
        outcome = await store.update_fields(BOOKINGS, booking_id, {"status": data.status})
        return UpdateResult(matched_count=outcome.matched_count, modified_count=outcome.modified_count)

    @app.delete("/bookings/{booking_id}", response_model=DeleteResult)
    async def delete_booking(booking_id: str, store: DocumentStore = Depends(get_store)):
        deleted = await store.delete_by_id(BOOKINGS, booking_id)
        return DeleteResult(deleted_count=deleted)


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
