"""Pydantic schemas for QuantPilot API endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from quantpilot.core.backtest.types import DataDuration, DataSource, DateRange, StrategyConfig

JobStatus = Literal["pending", "running", "completed", "failed"]


class HealthResponse(BaseModel):
    """Health endpoint response."""

    status: str = "ok"
    service: str = "quantpilot-api"


class ErrorResponse(BaseModel):
    """Error payload for typed API failures."""

    error_code: str
    message: str


class SignInRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class SignUpRequest(SignInRequest):
    full_name: str = ""


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    plan: str


class SessionResponse(BaseModel):
    access_token: str
    user: UserResponse


class TemplateResponse(BaseModel):
    category: str
    name: str
    description: str


class ParseRequest(BaseModel):
    description: str = Field(min_length=1)


class ChatTurn(BaseModel):
    role: Literal["user", "ai"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    history: list[ChatTurn] = Field(default_factory=list)


class ChatReply(BaseModel):
    message: str
    config: StrategyConfig | None = None
    should_execute: bool = False


class StrategyCreateRequest(BaseModel):
    """Create a strategy from a parsed config or from free text."""

    name: str = ""
    description: str = ""
    config: StrategyConfig | None = None

    @model_validator(mode="after")
    def validate_source(self) -> StrategyCreateRequest:
        """A config or a description is needed."""
        if self.config is None and not self.description.strip():
            raise ValueError("Provide config or description.")
        return self


class StrategyResponse(BaseModel):
    id: str
    user_id: str
    name: str
    description: str
    parsed_config: StrategyConfig
    created_at: datetime
    status: str


class DateRangeModel(BaseModel):
    start: str = Field(min_length=1)
    end: str | None = None

    def to_date_range(self) -> DateRange:
        return DateRange(start=self.start, end=self.end)


class BacktestRequest(BaseModel):
    """Backtest run request payload."""

    strategy_id: str | None = None
    config: StrategyConfig | None = None
    data_source: DataSource = DataSource.YAHOO_FINANCE
    duration: DataDuration | None = DataDuration.ONE_MONTH
    custom_file_name: str | None = None
    date_range: DateRangeModel | None = None
    seed: int | None = None
    include_series: bool = True


class CodeRequest(BaseModel):
    language: Literal["python", "pinescript", "mt5"] = "mt5"


class CodeResponse(BaseModel):
    backtest_id: str | None
    language: str
    filename: str
    code: str


class JobErrorResponse(BaseModel):
    """Background job error payload."""

    error_code: str
    message: str
    traceback: str | None = None


class JobRecordResponse(BaseModel):
    """Background job status payload."""

    job_id: str
    job_type: Literal["backtest"]
    status: JobStatus
    submitted_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    request: dict[str, Any]
    result: dict[str, Any] | None = None
    error: JobErrorResponse | None = None
