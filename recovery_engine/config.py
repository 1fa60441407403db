"""Configuration management using Pydantic Settings"""

from decimal import Decimal
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from recovery_engine.domain.exceptions import ConfigurationError
from recovery_engine.domain.models import CustomerCategory, InterestApplicableFrom
from recovery_engine.domain.overrides import OverrideRule, build_rule_table


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Storage collaborator
    database_url: str = "sqlite:///./recovery.db"

    # Service
    service_name: str = "recovery-engine"
    log_level: str = "INFO"

    # Engine defaults
    grace_period_days: int = 0
    partial_payment_threshold_amount: Decimal = Decimal("0")
    interest_applicable_from: InterestApplicableFrom = InterestApplicableFrom.DUE_DATE

    # Bulk recalculation / apply
    recalculation_max_workers: int = 4
    apply_lock_timeout_seconds: float = 10.0


settings = Settings()


class _CamelModel(BaseModel):
    """Accepts both snake_case and the camelCase keys the dashboard stores"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="forbid")


class PercentRange(_CamelModel):
    """Half-open percent band [min, max); a band ending at 100 includes 100"""

    min: Decimal = Field(ge=0, le=100)
    max: Decimal = Field(ge=0, le=100)


class DelayBands(_CamelModel):
    """
    Widths (adjusted delay days) of the per-invoice delay bands, stacked:
    with 5/20/40, Alpha is 0-5, Beta 6-25, Gamma 26-65 and Delta 66+.
    """

    alpha: int = Field(default=5, ge=0)
    beta: int = Field(default=20, ge=0)
    gamma: int = Field(default=40, ge=0)

    def category_for(self, adjusted_delay: int) -> CustomerCategory:
        if adjusted_delay <= self.alpha:
            return CustomerCategory.ALPHA
        if adjusted_delay <= self.alpha + self.beta:
            return CustomerCategory.BETA
        if adjusted_delay <= self.alpha + self.beta + self.gamma:
            return CustomerCategory.GAMMA
        return CustomerCategory.DELTA


class OverrideRuleConfig(_CamelModel):
    kind: str
    description: str
    result_category: str
    threshold_days: int = Field(default=0, ge=0)
    min_count: int = Field(default=1, ge=1)


def _default_thresholds() -> Dict[str, PercentRange]:
    return {
        "alpha": PercentRange(min=Decimal("90"), max=Decimal("100")),
        "beta": PercentRange(min=Decimal("75"), max=Decimal("90")),
        "gamma": PercentRange(min=Decimal("50"), max=Decimal("75")),
        "delta": PercentRange(min=Decimal("0"), max=Decimal("50")),
    }


def _default_override_rules() -> List[OverrideRuleConfig]:
    return [
        OverrideRuleConfig(
            kind="max_overdue_days",
            description="Invoice overdue more than 90 days",
            result_category=CustomerCategory.GAMMA.value,
            threshold_days=90,
        ),
        OverrideRuleConfig(
            kind="no_paid_with_overdue_unpaid",
            description="No paid invoices and an unpaid invoice overdue more than 90 days",
            result_category=CustomerCategory.DELTA.value,
            threshold_days=90,
        ),
    ]


class EngineConfig(_CamelModel):
    """
    Options recognized by the allocation, interest and classification steps.

    Build it through ``load_engine_config``: constructing or validating the
    model directly reports bad bands or options as ``pydantic.ValidationError``;
    only the loader turns them into ``ConfigurationError`` and checks the
    override rule table.
    """

    grace_period_days: int = Field(default_factory=lambda: settings.grace_period_days, ge=0)
    category_thresholds: Dict[str, PercentRange] = Field(default_factory=_default_thresholds)
    partial_payment_threshold_amount: Decimal = Field(
        default_factory=lambda: settings.partial_payment_threshold_amount, ge=0
    )
    override_rules: List[OverrideRuleConfig] = Field(default_factory=_default_override_rules)
    interest_applicable_from: InterestApplicableFrom = Field(
        default_factory=lambda: settings.interest_applicable_from
    )
    delay_bands: DelayBands = Field(default_factory=DelayBands)

    @model_validator(mode="after")
    def _check_bands(self) -> "EngineConfig":
        expected = {c.value.lower() for c in CustomerCategory.ranked()}
        if set(self.category_thresholds) != expected:
            raise ValueError(
                f"category_thresholds must define exactly {sorted(expected)}, "
                f"got {sorted(self.category_thresholds)}"
            )

        # Worst to best: delta starts at 0, each band starts where the previous ends, alpha ends at 100
        previous_max = Decimal("0")
        for category in reversed(CustomerCategory.ranked()):
            band = self.category_thresholds[category.value.lower()]
            if band.min >= band.max:
                raise ValueError(f"{category.value} band is empty: [{band.min}, {band.max})")
            if band.min != previous_max:
                raise ValueError(
                    f"{category.value} band must start at {previous_max}, got {band.min}; "
                    "bands must be contiguous and ordered Delta < Gamma < Beta < Alpha"
                )
            previous_max = band.max
        if previous_max != Decimal("100"):
            raise ValueError(f"Alpha band must end at 100, got {previous_max}")
        return self

    def category_for_percentage(self, on_time_percentage: Decimal) -> CustomerCategory:
        for category in CustomerCategory.ranked():
            if on_time_percentage >= self.category_thresholds[category.value.lower()].min:
                return category
        return CustomerCategory.DELTA

    def rule_table(self) -> tuple[OverrideRule, ...]:
        return build_rule_table(self.override_rules)

    def describe_thresholds(self) -> Dict[str, str]:
        """Human-readable bands, e.g. {'alpha': '90-100%'}"""
        return {
            name: f"{_plain(band.min)}-{_plain(band.max)}%"
            for name, band in self.category_thresholds.items()
        }


def _plain(value: Decimal) -> str:
    return format(value.normalize(), "f")


def load_engine_config(data: Mapping[str, Any] | EngineConfig | None = None) -> EngineConfig:
    """
    Build and validate engine configuration.

    Raises:
        ConfigurationError: bands not covering [0, 100] contiguously, override
            rules with an unknown kind or category, or invalid option values
    """
    if isinstance(data, EngineConfig):
        config = data
    else:
        try:
            config = EngineConfig.model_validate(dict(data or {}))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid engine configuration: {e}") from e

    # Resolving the table rejects unknown rule kinds and categories up front
    config.rule_table()
    return config
