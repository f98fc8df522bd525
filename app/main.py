from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.endpoints import auth
from app.core.config import settings
from app.core.errors import AppError, BadRequestError, ErrorCode
from app.core.logging import capture_error, init_sentry, setup_logging
from app.db.session import create_tables, dispose_engine
from app.middleware.logging import AccessLoggingMiddleware, build_access_logging_kwargs


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    yield
    await dispose_engine()


app = FastAPI(
    title=f"API {settings.APP_NAME}",
    description="""
## 🔐 Autenticação

Tokens JWT de acesso (curta duração) e de refresh (longa duração), enviados no corpo
da resposta e também como cookies http-only (`accessToken`, `refreshToken`).

### Como autenticar no Swagger UI:

1. **Registre o administrador** (apenas enquanto `GET /api/auth/registration-status` retornar `registrationOpen: true`):
   - Use `POST /api/auth/register`
2. **Faça login pelo Swagger**:
   - Clique no botão **Authorize** (cadeado verde)
   - Digite seu **email** no campo `username` e sua **senha** no campo `password`
3. **Quando o access token expirar** a API responde `401` com `code: TOKEN_EXPIRED`:
   - Use `POST /api/auth/refresh-token` para obter um novo par de tokens

### Recuperação de senha

`forgot-password` → `verify-otp` → `reset-password`. O código OTP tem 6 dígitos e expira
em 10 minutos; o reset token expira em 5 minutos e só pode ser usado uma vez.
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# Initialize logging and error tracking
setup_logging()
init_sentry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,        # Permite o envio de cookies e credenciais
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AccessLoggingMiddleware, **build_access_logging_kwargs())


def error_envelope(status_code: int, message: str, code: ErrorCode, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "code": code.value},
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = exc.code if isinstance(exc, AppError) else ErrorCode.HTTP_ERROR
    if exc.status_code == 404 and not isinstance(exc, AppError):
        code = ErrorCode.NOT_FOUND
    return error_envelope(exc.status_code, str(exc.detail), code, getattr(exc, "headers", None))


def _validation_message(error: dict) -> str:
    field = error["loc"][-1] if error.get("loc") else "body"
    if error.get("type") == "missing":
        return f"{field} is required."
    message = error.get("msg", "Invalid value.")
    return message.removeprefix("Value error, ")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = " ".join(_validation_message(error) for error in exc.errors())
    error = BadRequestError(message or "Invalid request.")
    return error_envelope(error.status_code, error.detail, error.code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    user = getattr(request.state, "user", None)
    capture_error(
        exc,
        context={"request": {"path": request.url.path, "method": request.method}},
        user={"id": user.id, "email": user.email, "name": user.name} if user else None,
        tags={"request_id": getattr(request.state, "request_id", "")},
    )
    return error_envelope(500, "Internal server error.", ErrorCode.INTERNAL_ERROR)


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])


@app.get("/")
def root():
    return {
        "success": True,
        "message": f"Bem-vindo à API do {settings.APP_NAME}. A documentação OpenAPI está em /docs",
    }
