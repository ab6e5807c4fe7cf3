from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, configure_logging
from database import CredentialStore, Database, TransactionStore
from errors import FinanceError, InvalidTokenError
from schemas import Credentials, Message, Token, TransactionIn, TransactionOut, TransactionPatch
from security import PasswordHasher, TokenService

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)
router = APIRouter()

# ----------------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------------
async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.database.session() as session:
        yield session


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_credential_store(request: Request, db: AsyncSession = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db, request.app.state.passwords)


def get_transaction_store(db: AsyncSession = Depends(get_db)) -> TransactionStore:
    return TransactionStore(db)


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> int:
    if credentials is None and request.headers.get("Authorization"):
        # A header with some other scheme is a bad token, not a missing one
        raise InvalidTokenError("authorization scheme is not Bearer")
    return tokens.verify(credentials.credentials if credentials else None)


# ----------------------------------------------------------------------------
# Error handlers
# ----------------------------------------------------------------------------
def _error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message}, headers=headers)


async def finance_error_handler(request: Request, exc: FinanceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=type(exc).__name__, exc_info=exc)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return _error_response(exc.status_code, exc.message, headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed input is not told apart from other server failures
    fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
    logger.error("request_invalid", path=request.url.path, fields=fields)
    return _error_response(500, FinanceError.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", path=request.url.path, exc_info=exc)
    return _error_response(500, FinanceError.message)


# ----------------------------------------------------------------------------
# App setup
# ----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    database: Database = app.state.database
    await database.create_all()
    logger.info("database_ready", url=make_url(database.url).render_as_string(hide_password=True))
    yield
    await database.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. Without explicit settings they are read from the environment."""
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(title="Personal Finance API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = Database(settings.database_url)
    app.state.passwords = PasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.tokens = TokenService(settings.jwt_secret)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FinanceError, finance_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(router)
    return app


# ----------------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------------
@router.get("/", response_model=Message)
async def read_root():
    return {"message": "Personal Finance Backend is running"}


@router.post("/api/auth/register", response_model=Token)
async def register(
    payload: Credentials,
    store: CredentialStore = Depends(get_credential_store),
    tokens: TokenService = Depends(get_token_service),
):
    user_id = await store.register(payload.email, payload.password)
    return Token(token=tokens.issue(user_id))


@router.post("/api/auth/login", response_model=Token)
async def login(
    payload: Credentials,
    store: CredentialStore = Depends(get_credential_store),
    tokens: TokenService = Depends(get_token_service),
):
    try:
        user_id = await store.verify(payload.email, payload.password)
    except FinanceError as exc:
        logger.info("login_failed", error=type(exc).__name__)
        raise
    logger.info("login_succeeded", user_id=user_id)
    return Token(token=tokens.issue(user_id))


@router.post("/api/transactions", response_model=TransactionOut)
async def create_transaction(
    payload: TransactionIn,
    user_id: int = Depends(get_current_user_id),
    store: TransactionStore = Depends(get_transaction_store),
):
    tx = await store.create(user_id, payload.amount, payload.category, payload.type)
    logger.info("transaction_created", user_id=user_id, transaction_id=tx.id)
    return tx


@router.get("/api/transactions", response_model=List[TransactionOut])
async def list_transactions(
    user_id: int = Depends(get_current_user_id),
    store: TransactionStore = Depends(get_transaction_store),
):
    return await store.list_by_user(user_id)


@router.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
async def update_transaction(
    transaction_id: str,
    payload: TransactionPatch,
    user_id: int = Depends(get_current_user_id),
    store: TransactionStore = Depends(get_transaction_store),
):
    tx = await store.update(transaction_id, user_id, payload.model_dump(exclude_unset=True))
    logger.info("transaction_updated", user_id=user_id, transaction_id=tx.id)
    return tx


@router.delete("/api/transactions/{transaction_id}", response_model=Message)
async def delete_transaction(
    transaction_id: str,
    user_id: int = Depends(get_current_user_id),
    store: TransactionStore = Depends(get_transaction_store),
):
    await store.delete(transaction_id, user_id)
    logger.info("transaction_deleted", user_id=user_id, transaction_id=transaction_id)
    return {"message": "Transaction deleted"}


if __name__ == "__main__":
    import uvicorn
    settings = Settings()
    app = create_app(settings)
    logger.info("server_starting", host=settings.host, port=settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)
