"""Performance rules: unbounded reads, table scans and round trips."""

from __future__ import annotations

from .model import (
    Category,
    CtxCall,
    Diagnostic,
    FileAnalysis,
    FunctionKind,
    ProjectContext,
    Rule,
    Severity,
)

__all__ = [
    "UnboundedCollect",
    "FilterWithoutIndex",
    "DateNowInQuery",
    "LoopRunMutation",
    "SequentialRunCalls",
    "UnnecessaryRunAction",
    "HelperVsRun",
    "MissingIndexOnForeignKey",
    "ActionFromClient",
    "CollectThenFilter",
    "LargeDocumentWrite",
    "NoPaginationForList",
    "MissingPaginationOptsValidator",
]

_RUN_QUERY_OR_MUTATION = ("ctx.runQuery", "ctx.runMutation")


def _in_action(call: CtxCall) -> bool:
    kind = call.enclosing_function_kind
    return kind is not None and kind.is_action()


class UnboundedCollect(Rule):
    id = "perf/unbounded-collect"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.ERROR,
                "Unbounded `.collect()` call",
                "Use `.take(n)` to limit results or implement pagination. All "
                "results count toward database bandwidth.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.collect_calls
            if ".take." not in c.detail
        ]


class FilterWithoutIndex(Rule):
    id = "perf/filter-without-index"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                "`.filter()` without an index scans the entire table",
                "Define an index on the filtered field and use `.withIndex()` "
                "instead for better performance.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.filter_calls
        ]


class DateNowInQuery(Rule):
    id = "perf/date-now-in-query"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        # The analysis only records Date.now() calls made inside queries.
        return [
            self._diagnostic(
                Severity.ERROR,
                "`Date.now()` in a query function breaks caching",
                "Queries must be deterministic. Pass the timestamp as an argument "
                "from the client or use a mutation instead.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.date_now_calls
        ]


class LoopRunMutation(Rule):
    id = "perf/loop-run-mutation"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.ERROR,
                f"ctx call `{c.detail}` inside a loop",
                "Calling ctx.runMutation/ctx.runQuery in a loop causes N+1 round "
                "trips. Consider batching operations or restructuring.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.loop_ctx_calls
        ]


class SequentialRunCalls(Rule):
    """Warn when an action makes three or more ctx.runQuery/runMutation calls."""

    id = "perf/sequential-run-calls"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        by_function: dict[str, list[CtxCall]] = {}
        for call in analysis.ctx_calls:
            if not (call.chain.startswith(_RUN_QUERY_OR_MUTATION) and _in_action(call)):
                continue
            key = call.enclosing_function_id or f"__anonymous__@{call.line}:{call.col}"
            by_function.setdefault(key, []).append(call)

        return [
            self._diagnostic(
                Severity.WARNING,
                f"Action `{name}` has {len(calls)} sequential ctx.run* calls "
                "— consider batching",
                "Multiple sequential ctx.runQuery/ctx.runMutation calls each start "
                "a separate transaction. Consider combining related reads/writes "
                "into a single mutation.",
                analysis.file_path,
                calls[0].line,
                calls[0].col,
            )
            for name, calls in by_function.items()
            if len(calls) >= 3
        ]


class UnnecessaryRunAction(Rule):
    """Warn when ctx.runAction is called from within an action."""

    id = "perf/unnecessary-run-action"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                "`ctx.runAction` called from within an action",
                "If both actions are in the same runtime, call the helper function "
                "directly instead of using ctx.runAction.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.ctx_calls
            if c.chain.startswith("ctx.runAction") and _in_action(c)
        ]


class HelperVsRun(Rule):
    """Warn when ctx.runQuery/runMutation is used inside a query or mutation."""

    id = "perf/helper-vs-run"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        def in_query_or_mutation(call: CtxCall) -> bool:
            kind = call.enclosing_function_kind
            return kind is not None and (kind.is_query() or kind.is_mutation())

        return [
            self._diagnostic(
                Severity.WARNING,
                f"`{c.chain}` used inside a query/mutation",
                "Use a helper function instead of ctx.runQuery/ctx.runMutation "
                "within queries/mutations. Helper functions share the same "
                "transaction.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.ctx_calls
            if c.chain.startswith(_RUN_QUERY_OR_MUTATION) and in_query_or_mutation(c)
        ]


class MissingIndexOnForeignKey(Rule):
    """Project-level: a ``v.id("table")`` schema field that no index covers."""

    id = "perf/missing-index-on-foreign-key"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return []

    def check_project(self, ctx: ProjectContext) -> list[Diagnostic]:
        seen: set[tuple[str, str, str, int, int, str]] = set()
        diagnostics = []
        for id_field in ctx.all_schema_id_fields:
            if not (id_field.field_name and id_field.table_id and id_field.file):
                continue
            indexed = any(
                idx.table
                and idx.table == id_field.table_id
                and id_field.field_name in idx.fields
                for idx in ctx.all_index_definitions
            )
            if indexed:
                continue
            key = (
                id_field.file,
                id_field.table_id,
                id_field.field_name,
                id_field.line,
                id_field.col,
                id_field.table_ref,
            )
            if key in seen:
                continue
            seen.add(key)
            diagnostics.append(
                self._diagnostic(
                    Severity.WARNING,
                    f"Foreign key field referencing `{id_field.table_ref}` has no index",
                    "Fields with `v.id()` references are commonly queried. Add an "
                    "index to avoid full table scans.",
                    id_field.file,
                    id_field.line,
                    id_field.col,
                )
            )
        return diagnostics


class ActionFromClient(Rule):
    """Warn when a public action can be called directly from the client."""

    id = "perf/action-from-client"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                f"Public action `{f.name}` can be called directly from client",
                "Calling actions from the browser is an anti-pattern. Use a "
                "mutation that schedules the action via "
                "`ctx.scheduler.runAfter(0, ...)`.",
                analysis.file_path,
                f.span_line,
                f.span_col,
            )
            for f in analysis.functions
            if f.kind is FunctionKind.ACTION
        ]


class CollectThenFilter(Rule):
    """Warn when collected results are filtered in JavaScript."""

    id = "perf/collect-then-filter"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                c.detail,
                "Collecting all results then filtering in JavaScript wastes "
                "bandwidth and breaks query caching. Use `.withIndex()` or "
                "`.filter()` on the query instead.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.collect_variable_filters
        ]


class LargeDocumentWrite(Rule):
    """Report large inline document writes."""

    id = "perf/large-document-write"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.INFO,
                f"Large inline document write: {c.detail}",
                "Documents approaching the 1 MiB limit may fail at runtime. "
                "Consider breaking large documents into related smaller ones.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.large_writes
        ]


class NoPaginationForList(Rule):
    """Warn once per file when a public query collects without bounds."""

    id = "perf/no-pagination-for-list"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        first = next(
            (
                c
                for c in analysis.ctx_calls
                if c.enclosing_function_kind is FunctionKind.QUERY
                and c.chain.startswith("ctx.db.")
                and c.chain.endswith(".collect")
                and ".take." not in c.chain
            ),
            None,
        )
        if first is None:
            return []
        return [
            self._diagnostic(
                Severity.WARNING,
                "Public query with `.collect()` may return unbounded results to client",
                "Consider using `.paginate()` or `.take(n)` for public queries to "
                "limit data sent to clients.",
                analysis.file_path,
                first.line,
                first.col,
            )
        ]


class MissingPaginationOptsValidator(Rule):
    """Paginated functions must validate ``paginationOpts``."""

    id = "perf/missing-pagination-opts-validator"
    category = Category.PERFORMANCE

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        with_validator = set(analysis.pagination_validator_functions)
        seen: set[str] = set()
        diagnostics = []
        for loc in analysis.paginated_functions:
            name = loc.detail
            if not name or name in with_validator or name in seen:
                continue
            seen.add(name)
            diagnostics.append(
                self._diagnostic(
                    Severity.WARNING,
                    f"Paginated query `{name}` is missing `paginationOptsValidator` "
                    "in args",
                    "Add `args: { paginationOpts: paginationOptsValidator, ... }` "
                    "so clients can pass typed pagination options safely.",
                    analysis.file_path,
                    loc.line,
                    loc.col,
                )
            )
        return diagnostics