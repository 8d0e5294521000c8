import secrets
from contextlib import asynccontextmanager
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings
from .errors import AccountExistsError, RewardNotFoundError, StorageFailureError, UserNotFoundError
from .models import (
    ClaimRecord, ClaimResponse, CreateRewardRequest, ErrorResponse,
    OpenAccountRequest, Reward, UserBalance,
)
from .queries import RewardQueries
from .service import ClaimCoordinator, ClaimPolicy, Committed, Rejected
from .store import LedgerStore


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    store: Optional[LedgerStore] = None,
    settings: Optional[Settings] = None,
    root_path: str = "",
) -> FastAPI:
    settings = settings or Settings.from_env()
    owns_store = store is None
    if store is None:
        store = LedgerStore(settings.db_path, lock_timeout=settings.lock_timeout)

    queries = RewardQueries(store)
    coordinator = ClaimCoordinator(store, ClaimPolicy(once_per_user=settings.once_per_user))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_store:
            store.close()

    app = FastAPI(
        title="Reward Ledger API",
        description="Points-for-rewards claims with atomic point and stock debits",
        version="1.0.0",
        root_path=root_path,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.queries = queries
    app.state.coordinator = coordinator

    @app.exception_handler(StorageFailureError)
    async def storage_failure_handler(request, exc: StorageFailureError):
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    def current_user(x_user_id: Optional[str] = Header(default=None)) -> UUID:
        # Identity is established upstream; we only read the forwarded id.
        if not x_user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
        try:
            return UUID(x_user_id)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header")

    def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
        expected = settings.admin_token
        if not expected or not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin token required")

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "reward-ledger"}

    @app.get("/rewards", response_model=list[Reward], tags=["Rewards"])
    def list_rewards(available_only: bool = False) -> list[Reward]:
        return queries.list_rewards(available_only=available_only)

    @app.get("/rewards/{reward_id}", response_model=Reward, tags=["Rewards"])
    def get_reward(reward_id: UUID) -> Reward:
        try:
            return queries.get_reward(reward_id)
        except RewardNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Reward {reward_id} not found")

    @app.post(
        "/rewards",
        response_model=Reward,
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(require_admin)],
        tags=["Rewards"],
    )
    def create_reward(request: CreateRewardRequest) -> Reward:
        return store.add_reward(
            title=request.title,
            points_required=request.points_required,
            stock=request.stock,
            description=request.description,
        )

    @app.post(
        "/rewards/{reward_id}/claim",
        response_model=ClaimResponse,
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
        tags=["Rewards"],
    )
    def claim_reward(reward_id: UUID, user_id: UUID = Depends(current_user)):
        try:
            outcome = coordinator.attempt(user_id, reward_id)
        except RewardNotFoundError:
            return _error(status.HTTP_404_NOT_FOUND, "Reward not found")
        except UserNotFoundError:
            return _error(status.HTTP_404_NOT_FOUND, "User not found")

        if isinstance(outcome, Committed):
            return ClaimResponse(claim=outcome.claim, message="Reward claimed successfully")
        if isinstance(outcome, Rejected):
            return _error(status.HTTP_400_BAD_REQUEST, outcome.reason.value)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    @app.post(
        "/users",
        response_model=UserBalance,
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(require_admin)],
        tags=["Users"],
    )
    def open_account(request: OpenAccountRequest) -> UserBalance:
        try:
            return store.open_account(request.user_id, points=request.points)
        except AccountExistsError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    @app.get("/users/{user_id}/balance", response_model=UserBalance, tags=["Users"])
    def get_user_balance(user_id: UUID) -> UserBalance:
        try:
            return queries.get_account(user_id)
        except UserNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {user_id} not found")

    @app.get("/users/{user_id}/claims", response_model=list[ClaimRecord], tags=["Users"])
    def get_user_claims(user_id: UUID) -> list[ClaimRecord]:
        try:
            return queries.claim_history(user_id)
        except UserNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {user_id} not found")

    return app


if __name__ == "__main__":
    import uvicorn

    from .config import configure_logging

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=8000)
