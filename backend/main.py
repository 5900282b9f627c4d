from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, StatementError
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.routes import auth, conversations, messages, websocket
from app.core.auth import get_current_user
from app.core.config import settings
from app.core.errors import AppError
from app.core.responses import UnicodeJSONResponse
from app.utils.file_upload import UPLOADS_DIR, initialize_directories
from app.utils.logger import get_logger
from dotenv import load_dotenv
import time

load_dotenv()

logger = get_logger("main")

# Initialize upload directories on startup
initialize_directories()


app = FastAPI(
    title="Community Messaging API",
    description="Direct and group conversations with unread tracking and real-time events",
    version="1.0.0",
    openapi_tags=[
        {"name": "Authentication", "description": "User authentication endpoints"},
        {"name": "Conversations", "description": "Conversation and group management endpoints"},
        {"name": "Messages", "description": "Message endpoints"},
        {"name": "WebSocket", "description": "WebSocket endpoints"},
    ],
    # Configure default JSON response class to preserve Unicode
    default_response_class=UnicodeJSONResponse
)

# Mount static files directory for uploaded images
app.mount("/uploads", StaticFiles(directory=str(UPLOADS_DIR)), name="uploads")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming API requests"""
    started = time.perf_counter()
    client = request.client.host if request.client else "Unknown"
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "[%s] %s from %s - Status: %s (%.1f ms)",
        request.method, request.url.path, client, response.status_code, elapsed_ms,
    )
    return response


# Configure CORS - MUST be added before routes
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
)


def cors_headers(request: Request) -> dict:
    """CORS headers for error responses, which bypass the middleware on some paths"""
    origin = request.headers.get("origin")
    headers = {}
    if origin in settings.CORS_ORIGINS:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers


def error_response(request: Request, status_code: int, code: str, message: str, details=None):
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return UnicodeJSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=cors_headers(request),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Typed errors raised by services and dependencies"""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return UnicodeJSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=cors_headers(request),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies or parameters"""
    fields = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        fields[".".join(location) or "body"] = error.get("msg", "Invalid value")
    return error_response(request, 400, "VALIDATION_ERROR", "Validation failed", {"fields": fields})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s: %s", request.url.path, exc.orig)
    return error_response(request, 409, "DUPLICATE_ENTRY", "Duplicate entry")


@app.exception_handler(DataError)
async def data_error_handler(request: Request, exc: StatementError):
    logger.warning("Rejected value on %s: %s", request.url.path, exc.orig)
    return error_response(request, 400, "INVALID_ID", "Invalid identifier or value")


@app.exception_handler(StatementError)
async def statement_error_handler(request: Request, exc: StatementError):
    """Bind-time conversion failures are client errors; driver failures are not"""
    if isinstance(exc, DBAPIError):
        return await global_exception_handler(request, exc)
    return await data_error_handler(request, exc)


@app.exception_handler(ExpiredSignatureError)
async def expired_token_handler(request: Request, exc: ExpiredSignatureError):
    return error_response(request, 401, "TOKEN_EXPIRED", "Authentication token has expired")


@app.exception_handler(JWTError)
async def jwt_error_handler(request: Request, exc: JWTError):
    return error_response(request, 401, "TOKEN_INVALID", "Invalid authentication token")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and ensure CORS headers are included"""
    code = {
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
    }.get(exc.status_code, "HTTP_ERROR")
    return error_response(request, exc.status_code, code, str(exc.detail))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions and ensure CORS headers are included"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    details = {"exception": f"{type(exc).__name__}: {exc}"} if settings.DEBUG else None
    return error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred", details)


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])

# Protected routes (require authentication)
app.include_router(conversations.router, prefix="/api/conversations", tags=["Conversations"], dependencies=[Depends(get_current_user)])
app.include_router(messages.router, prefix="/api/conversations", tags=["Messages"], dependencies=[Depends(get_current_user)])

app.include_router(websocket.router, prefix="/api", tags=["WebSocket"])


@app.get("/")
async def root():
    return {"message": "Welcome to the Community Messaging API"}


@app.get("/api/health")
async def health_check():
    return {"status": "healthy"}

# Run uvicorn server when file is executed directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
