from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


RiskLevel = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class ParsedRange:
    # Zero-based column, one-based row, mirroring A1 notation.
    start_col: int
    start_row: int


@dataclass(frozen=True)
class FormulaEntry:
    cell: str
    formula: str


class SheetData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    values: list[Any] | None = None
    formulas: list[Any] | None = None


class SheetContext(BaseModel):
    # Matrices stay loosely typed: malformed rows are skipped during extraction, not rejected here.
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    sheet_name: str | None = Field(default=None, alias="sheetName")
    sheet_id: int | str | None = Field(default=None, alias="sheetId")
    spreadsheet_id: str | None = Field(default=None, alias="spreadsheetId")
    range: str | None = None
    data: SheetData | None = None
    formulas: list[Any] | None = None
    organization: str | None = None
    department: str | None = None
    sheet_purpose: str | None = Field(default=None, alias="sheetPurpose")


class AuditRequestBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    range: str = Field(min_length=1)
    context: SheetContext


class AuditResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    formula: str
    compliant: bool
    risk: RiskLevel
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    # True only for placeholder results produced when the LLM call failed.
    synthetic: bool = False

    @field_validator("risk", mode="before")
    @classmethod
    def _normalize_risk(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("issues", "recommendations", mode="before")
    @classmethod
    def _coerce_string_list(cls, value: Any) -> Any:
        # Models occasionally answer with a bare string instead of a list.
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value


class AuditEntry(AuditResult):
    cell_address: str = Field(serialization_alias="cellAddress")


class AuditResponse(BaseModel):
    success: bool = True
    audits: list[AuditEntry]
    count: int
    compliant: int
    timestamp: str
    duration: int
    synthetic: bool = False


class PolicyInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = "Policy"
    content: str = Field(min_length=1)
    category: str | None = None
    source: str | None = None


class PolicyRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str = Field(serialization_alias="orgId")
    title: str
    content: str
    category: str | None = None
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime | None = Field(default=None, serialization_alias="updatedAt")
    source: str | None = None


class IngestRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = "Uploaded policy"
    content: str = ""
    department: str = "general"
    tags: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class RetrievalOptions:
    org_id: str
    top_k: int = 8
    min_confidence: float = 0.55


@dataclass(frozen=True)
class DocumentChunkRecord:
    id: str
    org_id: str
    content: str
    score: float
    embedding: list[float] | None = None
    metadata: dict[str, Any] | None = None


class SubscriptionStatus(BaseModel):
    org_id: str = Field(serialization_alias="orgId")
    customer_id: str = Field(default="", serialization_alias="customerId")
    subscription_id: str | None = Field(default=None, serialization_alias="subscriptionId")
    plan: Literal["free", "pro", "enterprise"] = "free"
    status: str = "active"
    current_period_end: datetime | None = Field(default=None, serialization_alias="currentPeriodEnd")
    usage_this_month: int = Field(default=0, serialization_alias="usageThisMonth")
    quota_limit: int = Field(serialization_alias="quotaLimit")


@dataclass(frozen=True)
class Principal:
    # Identity asserted by the trusted front door via x-user-* headers.
    user_id: str
    org_id: str
    email: str | None = None
