"""FastAPI application for QuantPilot workflows."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, Header, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from quantpilot.api.jobs import InMemoryJobQueue, JobRecord
from quantpilot.api.schemas import (
    BacktestRequest,
    ChatReply,
    ChatRequest,
    CodeRequest,
    CodeResponse,
    ErrorResponse,
    HealthResponse,
    JobErrorResponse,
    JobRecordResponse,
    ParseRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    StrategyCreateRequest,
    StrategyResponse,
    TemplateResponse,
    UserResponse,
)
from quantpilot.core.ai.client import ChatMessage, GenerativeClient, create_client
from quantpilot.core.auth.session import AuthSession, IdentityProvider, create_identity_provider
from quantpilot.core.backtest.export import (
    build_full_report,
    dump_full_report,
    equity_frame,
    frame_to_csv,
    report_filename,
    result_to_dict,
    trades_frame,
)
from quantpilot.core.backtest.types import StrategyConfig
from quantpilot.core.config import AppConfig, load_config
from quantpilot.core.services.workspace import (
    ANONYMOUS_USER_ID,
    Strategy,
    Workspace,
    WorkspaceRegistry,
)
from quantpilot.core.strategy.templates import STRATEGY_TEMPLATES, suggest
from quantpilot.core.utils.env import load_dotenv
from quantpilot.core.utils.errors import (
    AIServiceError,
    AuthError,
    BacktestError,
    ConfigLoadError,
    IdentityServiceError,
    MissingCredentialError,
    NotFoundError,
    QuantPilotError,
)
from quantpilot.core.utils.logging import configure_logging, get_logger

CONFIG_ENV_VAR = "QUANTPILOT_CONFIG"
LIMIT_QUERY = Query(default=50, ge=1, le=500)
_LOGGER_NAME = "quantpilot.api.app"


def _http_status_for_quantpilot_error(exc: QuantPilotError) -> int:
    """Map typed domain exceptions to HTTP status codes."""
    if isinstance(exc, MissingCredentialError):
        return 503
    if isinstance(exc, (ConfigLoadError, BacktestError)):
        return 400
    if isinstance(exc, (AIServiceError, IdentityServiceError)):
        return 502
    if isinstance(exc, AuthError):
        return 401
    if isinstance(exc, NotFoundError):
        return 404
    return 500


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header must be a bearer token.")
    return token.strip()


def _session_response(session: AuthSession) -> SessionResponse:
    user = session.user
    return SessionResponse(
        access_token=session.access_token,
        user=UserResponse(id=user.id, email=user.email, full_name=user.full_name, plan=user.plan.value),
    )


def _strategy_response(strategy: Strategy) -> StrategyResponse:
    return StrategyResponse(
        id=strategy.id,
        user_id=strategy.user_id,
        name=strategy.name,
        description=strategy.description,
        parsed_config=strategy.parsed_config,
        created_at=strategy.created_at,
        status=strategy.status,
    )


def _job_response(record: JobRecord) -> JobRecordResponse:
    error = None
    if record.status == "failed":
        error = JobErrorResponse(
            error_code=record.error_code or "internal_error",
            message=record.error_message or "",
            traceback=record.error_traceback,
        )
    return JobRecordResponse(
        job_id=record.job_id,
        job_type=record.job_type,
        status=record.status,
        submitted_at=record.submitted_at,
        started_at=record.started_at,
        finished_at=record.finished_at,
        request=record.request,
        result=record.result,
        error=error,
    )


def _config_from_env() -> AppConfig:
    """Load the app config named by QUANTPILOT_CONFIG, or use defaults."""
    raw_path = os.getenv(CONFIG_ENV_VAR, "").strip()
    return AppConfig() if not raw_path else load_config(Path(raw_path))


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


def create_app(
    config: AppConfig | None = None,
    ai_client: GenerativeClient | None = None,
    identity_provider: IdentityProvider | None = None,
    job_workers: int = 2,
) -> FastAPI:
    """
    Build and return the QuantPilot FastAPI app.

    Args:
        config: Application config; defaults are used when omitted.
        ai_client: Generative-text client; built from ``config.ai`` when omitted.
        identity_provider: Identity provider; chosen from ``config.auth`` when omitted.
        job_workers: Background job worker threads.

    Returns:
        Configured FastAPI instance.
    """
    load_dotenv(Path(".env"))
    configure_logging()
    app_config = config or _config_from_env()
    client = ai_client or create_client(
        app_config.ai.client,
        model=app_config.ai.model,
        api_key_env=app_config.ai.api_key_env,
        base_url=app_config.ai.base_url,
    )
    provider = identity_provider or create_identity_provider(app_config.auth)
    workspaces = WorkspaceRegistry(
        lambda user_id: Workspace(client, engine=app_config.engine, user_id=user_id)
    )
    jobs = InMemoryJobQueue(max_workers=job_workers)

    app = FastAPI(
        title="QuantPilot API",
        version="0.1.0",
        description="Strategy parsing, simulated backtests and AI reports.",
    )
    app.state.workspaces = workspaces
    app.state.jobs = jobs
    app.state.identity_provider = provider
    logger = get_logger(_LOGGER_NAME)
    logger.info("QuantPilot API startup complete.")

    @app.exception_handler(QuantPilotError)
    async def _handle_quantpilot_error(_: Any, exc: QuantPilotError) -> JSONResponse:
        """Render typed domain errors as JSON responses."""
        get_logger(_LOGGER_NAME).error("QuantPilot API error: %s", exc)
        payload = ErrorResponse(error_code=exc.error_code, message=str(exc))
        return JSONResponse(
            status_code=_http_status_for_quantpilot_error(exc),
            content=payload.model_dump(),
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected_error(_: Any, exc: Exception) -> JSONResponse:
        """Render unknown errors as deterministic API payloads."""
        get_logger(_LOGGER_NAME).exception("Unhandled API error: %s", exc)
        payload = ErrorResponse(error_code="internal_error", message="Internal server error.")
        return JSONResponse(status_code=500, content=payload.model_dump())

    def current_session(authorization: str | None = Header(default=None)) -> AuthSession | None:
        token = _bearer_token(authorization)
        if token is None:
            return None
        session = provider.get_session(token)
        if session is None:
            raise AuthError("Session is invalid or expired.")
        return session

    def current_workspace(
        session: AuthSession | None = Depends(current_session),
    ) -> Workspace:
        user_id = ANONYMOUS_USER_ID if session is None else session.user.id
        return workspaces.get(user_id)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Return API health metadata."""
        return HealthResponse()

    @app.post("/auth/signup", response_model=SessionResponse)
    async def sign_up(request: SignUpRequest) -> SessionResponse:
        session = provider.sign_up(request.email, request.password, request.full_name)
        return _session_response(session)

    @app.post("/auth/signin", response_model=SessionResponse)
    async def sign_in(request: SignInRequest) -> SessionResponse:
        return _session_response(provider.sign_in(request.email, request.password))

    @app.get("/auth/session", response_model=SessionResponse)
    async def session_info(
        session: AuthSession | None = Depends(current_session),
    ) -> SessionResponse:
        if session is None:
            raise AuthError("Not signed in.")
        return _session_response(session)

    @app.post("/auth/signout")
    async def sign_out(session: AuthSession | None = Depends(current_session)) -> dict[str, str]:
        """Invalidate the session and drop its workspace."""
        if session is None:
            raise AuthError("Not signed in.")
        provider.sign_out(session.access_token)
        workspaces.discard(session.user.id)
        return {"status": "signed_out"}

    @app.get("/templates", response_model=list[TemplateResponse])
    async def templates() -> list[TemplateResponse]:
        return [
            TemplateResponse(category=t.category, name=t.name, description=t.description)
            for t in STRATEGY_TEMPLATES
        ]

    @app.get("/suggestions", response_model=list[str])
    async def suggestions(text: str = Query(default="")) -> list[str]:
        return suggest(text)

    @app.post("/strategies/parse", response_model=StrategyConfig)
    async def parse_strategy(
        request: ParseRequest,
        workspace: Workspace = Depends(current_workspace),
    ) -> StrategyConfig:
        return workspace.ai_client.parse_strategy(request.description)

    @app.post("/chat", response_model=ChatReply)
    async def chat(
        request: ChatRequest,
        workspace: Workspace = Depends(current_workspace),
    ) -> ChatReply:
        history = [ChatMessage(role=turn.role, content=turn.content) for turn in request.history]
        reply = workspace.chat(history, request.message)
        return ChatReply(
            message=reply.message, config=reply.config, should_execute=reply.should_execute
        )

    @app.post("/strategies", response_model=StrategyResponse, status_code=201)
    async def create_strategy(
        request: StrategyCreateRequest,
        workspace: Workspace = Depends(current_workspace),
    ) -> StrategyResponse:
        if request.config is not None:
            strategy = workspace.create_strategy(
                name=request.name, config=request.config, description=request.description
            )
        else:
            strategy = workspace.create_strategy_from_text(request.description, name=request.name)
        return _strategy_response(strategy)

    @app.get("/strategies", response_model=list[StrategyResponse])
    async def list_strategies(
        workspace: Workspace = Depends(current_workspace),
    ) -> list[StrategyResponse]:
        return [_strategy_response(strategy) for strategy in workspace.list_strategies()]

    @app.get("/strategies/{strategy_id}", response_model=StrategyResponse)
    async def strategy_detail(
        strategy_id: str,
        workspace: Workspace = Depends(current_workspace),
    ) -> StrategyResponse:
        return _strategy_response(workspace.get_strategy(strategy_id))

    @app.post("/backtests")
    async def run_backtest(
        request: BacktestRequest,
        workspace: Workspace = Depends(current_workspace),
    ) -> dict[str, Any]:
        """Run a backtest and return the completed result."""
        result = await workspace.run_backtest(
            strategy_id=request.strategy_id,
            config=request.config,
            data_source=request.data_source,
            duration=request.duration,
            custom_file_name=request.custom_file_name,
            date_range=None if request.date_range is None else request.date_range.to_date_range(),
            seed=request.seed,
        )
        return result_to_dict(result, include_series=request.include_series)

    @app.get("/backtests")
    async def list_backtests(
        strategy_id: str | None = Query(default=None),
        limit: int = LIMIT_QUERY,
        workspace: Workspace = Depends(current_workspace),
    ) -> list[dict[str, Any]]:
        results = workspace.list_backtests(strategy_id=strategy_id)[:limit]
        return [result_to_dict(result, include_series=False) for result in results]

    @app.get("/backtests/{backtest_id}")
    async def backtest_detail(
        backtest_id: str,
        workspace: Workspace = Depends(current_workspace),
    ) -> dict[str, Any]:
        return result_to_dict(workspace.get_backtest(backtest_id))

    @app.post("/backtests/{backtest_id}/report")
    async def backtest_report(
        backtest_id: str,
        workspace: Workspace = Depends(current_workspace),
    ) -> dict[str, Any]:
        updated = workspace.generate_report(backtest_id)
        return result_to_dict(updated, include_series=False)

    @app.post("/backtests/{backtest_id}/code", response_model=CodeResponse)
    async def backtest_code(
        backtest_id: str,
        request: CodeRequest,
        workspace: Workspace = Depends(current_workspace),
    ) -> CodeResponse:
        generated = workspace.generate_code(request.language, backtest_id=backtest_id)
        return CodeResponse(
            backtest_id=generated.backtest_id,
            language=generated.language,
            filename=generated.filename,
            code=generated.code,
        )

    @app.get("/backtests/{backtest_id}/trades.csv", response_class=PlainTextResponse)
    async def backtest_trades_csv(
        backtest_id: str,
        workspace: Workspace = Depends(current_workspace),
    ) -> PlainTextResponse:
        result = workspace.get_backtest(backtest_id)
        return PlainTextResponse(
            frame_to_csv(trades_frame(result.trades)),
            media_type="text/csv",
            headers=_attachment(f"trades_{backtest_id}.csv"),
        )

    @app.get("/backtests/{backtest_id}/equity.csv", response_class=PlainTextResponse)
    async def backtest_equity_csv(
        backtest_id: str,
        workspace: Workspace = Depends(current_workspace),
    ) -> PlainTextResponse:
        result = workspace.get_backtest(backtest_id)
        return PlainTextResponse(
            frame_to_csv(equity_frame(result.equity_curve), include_index=True),
            media_type="text/csv",
            headers=_attachment(f"equity_{backtest_id}.csv"),
        )

    @app.get("/backtests/{backtest_id}/full-report")
    async def backtest_full_report(
        backtest_id: str,
        workspace: Workspace = Depends(current_workspace),
    ) -> PlainTextResponse:
        result = workspace.get_backtest(backtest_id)
        payload = build_full_report(result, workspace.get_backtest_config(backtest_id))
        return PlainTextResponse(
            dump_full_report(payload),
            media_type="application/json",
            headers=_attachment(report_filename(backtest_id)),
        )

    @app.post("/jobs/backtests", response_model=JobRecordResponse, status_code=202)
    async def enqueue_backtest(
        request: BacktestRequest,
        workspace: Workspace = Depends(current_workspace),
    ) -> JobRecordResponse:
        """Queue a backtest; poll ``/jobs/{job_id}`` for its status."""

        def task() -> dict[str, Any]:
            result = asyncio.run(
                workspace.run_backtest(
                    strategy_id=request.strategy_id,
                    config=request.config,
                    data_source=request.data_source,
                    duration=request.duration,
                    custom_file_name=request.custom_file_name,
                    date_range=(
                        None if request.date_range is None else request.date_range.to_date_range()
                    ),
                    seed=request.seed,
                )
            )
            return result_to_dict(result, include_series=False)

        record = jobs.submit(
            "backtest",
            request.model_dump(mode="json", by_alias=True),
            task,
            owner_id=workspace.user_id,
        )
        return _job_response(record)

    @app.get("/jobs", response_model=list[JobRecordResponse])
    async def list_jobs(
        limit: int = LIMIT_QUERY,
        workspace: Workspace = Depends(current_workspace),
    ) -> list[JobRecordResponse]:
        records = jobs.list(limit=limit, owner_id=workspace.user_id)
        return [_job_response(record) for record in records]

    @app.get("/jobs/{job_id}", response_model=JobRecordResponse)
    async def job_detail(
        job_id: str,
        workspace: Workspace = Depends(current_workspace),
    ) -> JobRecordResponse:
        record = jobs.get(job_id)
        if record is None or record.owner_id != workspace.user_id:
            raise NotFoundError(f"Job '{job_id}' not found.")
        return _job_response(record)

    return app
