"""The registry of analyzer rules and helpers to run them."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from . import performance, schema, security
from .model import Diagnostic, FileAnalysis, ProjectContext, Rule

__all__ = ["RuleRegistry"]

RuleFilter = Callable[[str], bool]


def _default_rules() -> list[Rule]:
    return [
        # Security
        security.MissingArgValidators(),
        security.MissingReturnValidators(),
        security.MissingAuthCheck(),
        security.InternalApiMisuse(),
        security.HardcodedSecrets(),
        security.EnvNotGitignored(),
        security.SpoofableAccessControl(),
        security.MissingTableId(),
        security.MissingHttpAuth(),
        security.ConditionalFunctionExport(),
        security.GenericMutationArgs(),
        security.OverlyBroadPatch(),
        security.HttpMissingCors(),
        # Performance
        performance.UnboundedCollect(),
        performance.FilterWithoutIndex(),
        performance.DateNowInQuery(),
        performance.LoopRunMutation(),
        performance.SequentialRunCalls(),
        performance.UnnecessaryRunAction(),
        performance.HelperVsRun(),
        performance.MissingIndexOnForeignKey(),
        performance.ActionFromClient(),
        performance.CollectThenFilter(),
        performance.LargeDocumentWrite(),
        performance.NoPaginationForList(),
        performance.MissingPaginationOptsValidator(),
        # Schema
        schema.MissingSchema(),
        schema.DeepNesting(),
        schema.ArrayRelationships(),
        schema.RedundantIndex(),
        schema.TooManyIndexes(),
        schema.MissingSearchIndexFilter(),
        schema.OptionalFieldNoDefaultHandling(),
        schema.MissingIndexForQuery(),
        schema.IndexNameIncludesFields(),
    ]


def _all_enabled(rule_id: str) -> bool:
    return True


class RuleRegistry:
    """Holds every known rule in a fixed order and runs the enabled ones."""

    def __init__(self, rules: Iterable[Rule] | None = None) -> None:
        self._rules: tuple[Rule, ...] = tuple(
            _default_rules() if rules is None else rules
        )

    def rules(self) -> tuple[Rule, ...]:
        """Return the registered rules in registration order."""
        return self._rules

    def _enabled(self, enabled: RuleFilter | None) -> Iterable[Rule]:
        accept = enabled or _all_enabled
        return (rule for rule in self._rules if accept(rule.id))

    def run(
        self, analysis: FileAnalysis, enabled: RuleFilter | None = None
    ) -> list[Diagnostic]:
        """Run the per-file check of every enabled rule on ``analysis``."""
        return [
            diagnostic
            for rule in self._enabled(enabled)
            for diagnostic in rule.check(analysis)
        ]

    def run_project(
        self, ctx: ProjectContext, enabled: RuleFilter | None = None
    ) -> list[Diagnostic]:
        """Run the project-level check of every enabled rule on ``ctx``."""
        return [
            diagnostic
            for rule in self._enabled(enabled)
            for diagnostic in rule.check_project(ctx)
        ]