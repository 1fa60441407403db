"""Override rule table - hard rules that can force a worse category.

Rules are data: each configured entry names a condition ``kind`` and the
category it forces. Conditions are looked up in ``RULE_CONDITIONS``, so a
new rule kind is one function plus one registry entry.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from recovery_engine.domain.exceptions import ConfigurationError
from recovery_engine.domain.models import CustomerCategory, InvoiceDetail, PaymentStatus


@dataclass(frozen=True)
class TrackRecord:
    """Facts about a customer's invoices that override conditions inspect"""

    details: Tuple[InvoiceDetail, ...]
    unpaid_overdue_days: Tuple[int, ...]  # days overdue as of evaluation, one per unpaid invoice

    @property
    def paid_count(self) -> int:
        return sum(1 for d in self.details if d.status != PaymentStatus.UNPAID)

    @property
    def paid_delays(self) -> List[int]:
        return [d.delay_days for d in self.details if d.status != PaymentStatus.UNPAID]

    @property
    def max_overdue_days(self) -> int:
        return max([0, *self.paid_delays, *self.unpaid_overdue_days])


Condition = Callable[[TrackRecord, int, int], bool]


def _max_overdue_days(record: TrackRecord, threshold_days: int, min_count: int) -> bool:
    """Any single invoice overdue beyond threshold_days"""
    return record.max_overdue_days > threshold_days


def _no_paid_with_overdue_unpaid(record: TrackRecord, threshold_days: int, min_count: int) -> bool:
    """Zero paid invoices and at least one unpaid invoice overdue beyond threshold_days"""
    if record.paid_count > 0:
        return False
    return any(days > threshold_days for days in record.unpaid_overdue_days)


def _unpaid_overdue_count(record: TrackRecord, threshold_days: int, min_count: int) -> bool:
    """At least min_count unpaid invoices overdue beyond threshold_days"""
    return sum(1 for days in record.unpaid_overdue_days if days > threshold_days) >= min_count


RULE_CONDITIONS: Dict[str, Condition] = {
    "max_overdue_days": _max_overdue_days,
    "no_paid_with_overdue_unpaid": _no_paid_with_overdue_unpaid,
    "unpaid_overdue_count": _unpaid_overdue_count,
}


@dataclass(frozen=True)
class OverrideRule:
    kind: str
    description: str
    result_category: CustomerCategory
    threshold_days: int
    min_count: int
    condition: Condition

    def fires(self, record: TrackRecord) -> bool:
        return self.condition(record, self.threshold_days, self.min_count)


@dataclass(frozen=True)
class OverrideOutcome:
    category: CustomerCategory
    applied: bool
    reason: Optional[str]
    eligible: Tuple[str, ...]


def build_rule_table(rule_configs: Iterable) -> Tuple[OverrideRule, ...]:
    """Resolve configured rules (kind, description, result_category, ...) in precedence order"""
    rules = []
    for position, cfg in enumerate(rule_configs):
        condition = RULE_CONDITIONS.get(cfg.kind)
        if condition is None:
            raise ConfigurationError(
                f"override rule #{position + 1} has unknown kind {cfg.kind!r}; "
                f"expected one of {sorted(RULE_CONDITIONS)}"
            )
        try:
            result = CustomerCategory(cfg.result_category)
        except ValueError as e:
            raise ConfigurationError(
                f"override rule #{position + 1} references unknown category {cfg.result_category!r}"
            ) from e
        if result == CustomerCategory.NEW:
            raise ConfigurationError(f"override rule #{position + 1} cannot force category New")
        rules.append(
            OverrideRule(
                kind=cfg.kind,
                description=cfg.description,
                result_category=result,
                threshold_days=cfg.threshold_days,
                min_count=cfg.min_count,
                condition=condition,
            )
        )
    return tuple(rules)


def apply_overrides(
    base: CustomerCategory,
    record: TrackRecord,
    rules: Iterable[OverrideRule],
) -> OverrideOutcome:
    """
    Evaluate rules in order and return the worst resulting category.

    A fired rule proposes worse(base, rule.result_category), so rules can
    never improve on the statistical category. The reason reported is the
    first rule (in precedence order) whose proposal equals the final
    category; when several rules fired the reason says so.
    """
    fired = [rule for rule in rules if rule.fires(record)]
    if not fired:
        return OverrideOutcome(category=base, applied=False, reason=None, eligible=())

    final = CustomerCategory.worst(base, *(rule.result_category for rule in fired))
    eligible = tuple(rule.description for rule in fired)

    if final == base:
        # Rules fired but none is harsher than the statistical result
        return OverrideOutcome(category=base, applied=False, reason=None, eligible=eligible)

    decisive = next(rule for rule in fired if rule.result_category == final)
    reason = decisive.description
    if len(fired) > 1:
        reason = f"{reason} (multiple override rules eligible: {len(fired)})"
    return OverrideOutcome(category=final, applied=True, reason=reason, eligible=eligible)
