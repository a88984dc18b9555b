"""
Condition registry.

Resource conditions are registered with the specs record they inspect and are
called as `check(resource, specs, config, ctx) -> Verdict`. A resource whose
specs are of another type gets a not_applicable verdict without the check
running. Account conditions are coroutines `check(config, ctx) -> [Verdict]`.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, Type, Union

from app.modules.compliance.domain.context import EvaluatedResource, EvaluationContext
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import SpecsBase

Config = Dict[str, Any]
ResourceCheck = Callable[[EvaluatedResource, Any, Config, EvaluationContext], Verdict]
AccountCheck = Callable[[Config, EvaluationContext], Awaitable[Sequence[Verdict]]]
SpecsFilter = Union[Type[SpecsBase], Tuple[Type[SpecsBase], ...]]


class ConditionRegistry:
    """Maps a rule's `condition_type` to the evaluator implementing it."""

    def __init__(self) -> None:
        self._resource: Dict[str, Tuple[ResourceCheck, SpecsFilter]] = {}
        self._account: Dict[str, AccountCheck] = {}

    def _ensure_unclaimed(self, condition_type: str, check: Callable[..., Any]) -> None:
        existing = self._resource.get(condition_type, (None, None))[0] or self._account.get(
            condition_type
        )
        # Re-registering the same function (module reload) is harmless.
        if existing is not None and existing is not check:
            raise ValueError(
                f"Duplicate condition registration for {condition_type}: "
                f"{existing.__name__} vs {check.__name__}"
            )

    def resource(
        self, condition_type: str, specs: SpecsFilter = SpecsBase
    ) -> Callable[[ResourceCheck], ResourceCheck]:
        def wrapper(check: ResourceCheck) -> ResourceCheck:
            self._ensure_unclaimed(condition_type, check)
            self._resource[condition_type] = (check, specs)
            return check

        return wrapper

    def account(self, condition_type: str) -> Callable[[AccountCheck], AccountCheck]:
        def wrapper(check: AccountCheck) -> AccountCheck:
            self._ensure_unclaimed(condition_type, check)
            self._account[condition_type] = check
            return check

        return wrapper

    def is_account_level(self, condition_type: str) -> bool:
        return condition_type in self._account

    def account_check(self, condition_type: str) -> Optional[AccountCheck]:
        return self._account.get(condition_type)

    def evaluate_resource(
        self,
        condition_type: str,
        resource: EvaluatedResource,
        config: Config,
        ctx: EvaluationContext,
    ) -> Verdict:
        entry = self._resource.get(condition_type)
        if entry is None:
            return Verdict.not_applicable("Rule condition not recognized.")
        check, specs_type = entry
        if resource.specs_error:
            return Verdict.not_applicable(f"Resource data unavailable: {resource.specs_error}.")
        if not isinstance(resource.specs, specs_type):
            return Verdict.not_applicable(
                f"Condition {condition_type} does not apply to {resource.resource_type} resources."
            )
        return check(resource, resource.specs, config, ctx)

    @property
    def condition_types(self) -> list[str]:
        return sorted([*self._resource, *self._account])


conditions = ConditionRegistry()
