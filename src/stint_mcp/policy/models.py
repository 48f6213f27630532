"""Budget policy model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BudgetPolicy(BaseModel):
    """Per-session resource thresholds.

    Every option has an explicit default so two runs with the same policy file behave
    identically. Keys use the camelCase names found in policy files; snake_case names
    are accepted when constructing the model in code.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    max_files_per_session: int = Field(
        default=10,
        gt=0,
        alias="maxFilesPerSession",
        description="Files touched before the session must checkpoint.",
    )
    max_lines_per_session: int = Field(
        default=500,
        gt=0,
        alias="maxLinesPerSession",
        description="Lines changed before the session must checkpoint.",
    )
    max_tests_per_session: int = Field(
        default=20,
        gt=0,
        alias="maxTestsPerSession",
        description="Tests added before the session must checkpoint.",
    )
    max_token_fraction: float = Field(
        default=0.90,
        gt=0,
        le=1,
        alias="maxTokenFraction",
        description="Fraction of the context window at which the session is critical.",
    )
    soft_token_fraction: float = Field(
        default=0.80,
        gt=0,
        le=1,
        alias="softTokenFraction",
        description="Fraction of the context window at which a full file budget stops the session.",
    )
    context_window_tokens: int = Field(
        default=200_000,
        gt=0,
        alias="contextWindowTokens",
        description="Size of the context window the token fraction is measured against.",
    )

    @model_validator(mode="after")
    def _check_fractions(self) -> "BudgetPolicy":
        if self.soft_token_fraction > self.max_token_fraction:
            raise ValueError("softTokenFraction must not exceed maxTokenFraction")
        return self


__all__ = ["BudgetPolicy"]
