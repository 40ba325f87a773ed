"""Schema rules: table layout, indexes and validator shape."""

from __future__ import annotations

from pathlib import PurePosixPath

from .model import (
    Category,
    Diagnostic,
    FileAnalysis,
    IndexDef,
    ProjectContext,
    Rule,
    Severity,
)

__all__ = [
    "normalize_index_token",
    "expected_index_name",
    "MissingSchema",
    "DeepNesting",
    "ArrayRelationships",
    "RedundantIndex",
    "TooManyIndexes",
    "MissingSearchIndexFilter",
    "OptionalFieldNoDefaultHandling",
    "MissingIndexForQuery",
    "IndexNameIncludesFields",
]

_SCHEMA_FILENAMES = frozenset(
    {
        "schema.ts",
        "schema.js",
        "schema.mts",
        "schema.cts",
        "schema.mjs",
        "schema.cjs",
    }
)

_REDUNDANT_HELP = (
    "A compound index can serve queries on its prefix fields. Remove the "
    "shorter index to reduce storage overhead."
)


class MissingSchema(Rule):
    """Project-level: no schema file in the convex/ directory."""

    id = "schema/missing-schema"
    category = Category.SCHEMA

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return []

    def check_project(self, ctx: ProjectContext) -> list[Diagnostic]:
        if ctx.has_schema:
            return []
        return [
            self._diagnostic(
                Severity.WARNING,
                "No schema file found in convex/ directory",
                "Create a convex/schema* file to define your database schema "
                "with type safety.",
                "convex/",
                0,
                0,
            )
        ]


class DeepNesting(Rule):
    """Warn when schema validators nest more than three levels deep."""

    id = "schema/deep-nesting"
    category = Category.SCHEMA

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        depth = analysis.schema_nesting_depth
        if depth <= 3:
            return []
        return [
            self._diagnostic(
                Severity.WARNING,
                f"Schema validators nested {depth} levels deep",
                "Consider flattening deeply nested validators by splitting into "
                "separate tables or using v.any() for complex data.",
                analysis.file_path,
                1,
                1,
            )
        ]


class ArrayRelationships(Rule):
    """Warn when ``v.array(v.id(...))`` models a relationship."""

    id = "schema/array-relationships"
    category = Category.SCHEMA

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                f"Array of document references: {c.detail}",
                "Arrays of v.id() for relationships can grow unbounded. Consider "
                "using a separate join table instead.",
                analysis.file_path,
                c.line,
                c.col,
            )
            for c in analysis.schema_array_id_fields
        ]


def _is_strict_prefix(shorter: list[str], longer: list[str]) -> bool:
    return len(shorter) < len(longer) and longer[: len(shorter)] == shorter


class RedundantIndex(Rule):
    """Warn when one index is a prefix of another on the same table."""

    id = "schema/redundant-index"
    category = Category.SCHEMA

    def _redundant(self, analysis: FileAnalysis, short: IndexDef, long: IndexDef) -> Diagnostic:
        return self._diagnostic(
            Severity.WARNING,
            f"Index '{short.name}' is redundant — it's a prefix of index "
            f"'{long.name}'",
            _REDUNDANT_HELP,
            analysis.file_path,
            short.line,
            1,
        )

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        diagnostics = []
        indexes = analysis.index_definitions
        for i, idx in enumerate(indexes):
            for other in indexes[i + 1 :]:
                if not idx.table or idx.table != other.table:
                    continue
                if _is_strict_prefix(idx.fields, other.fields):
                    diagnostics.append(self._redundant(analysis, idx, other))
                if _is_strict_prefix(other.fields, idx.fields):
                    diagnostics.append(self._redundant(analysis, other, idx))
        return diagnostics


class TooManyIndexes(Rule):
    """Report a table with eight or more indexes."""

    id = "schema/too-many-indexes"
    category = Category.SCHEMA

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        by_table: dict[str, list[IndexDef]] = {}
        for idx in analysis.index_definitions:
            if idx.table:
                by_table.setdefault(idx.table, []).append(idx)
        return [
            self._diagnostic(
                Severity.INFO,
                f"Table '{table}' has {len(indexes)} indexes (soft warning "
                "threshold is 8, hard limit is 32)",
                "Each index adds storage overhead and slows writes. Consider "
                "consolidating or removing unused indexes.",
                analysis.file_path,
                indexes[0].line,
                1,
            )
            for table, indexes in by_table.items()
            if len(indexes) >= 8
        ]


class MissingSearchIndexFilter(Rule):
    """Report a search index without filterFields."""

    id = "schema/missing-search-index-filter"
    category = Category.SCHEMA

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.INFO,
                f"Search index `{s.name}` has no filterFields",
                "Adding filterFields to search indexes improves query performance "
                "by narrowing results before full-text search.",
                analysis.file_path,
                s.line,
                1,
            )
            for s in analysis.search_index_definitions
            if not s.has_filter_fields
        ]


class OptionalFieldNoDefaultHandling(Rule):
    """Warn when a schema file declares five or more optional fields."""

    id = "schema/optional-field-no-default-handling"
    category = Category.SCHEMA

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        is_schema_file = PurePosixPath(analysis.file_path).name in _SCHEMA_FILENAMES
        count = len(analysis.optional_schema_fields)
        if not is_schema_file or count < 5:
            return []
        return [
            self._diagnostic(
                Severity.WARNING,
                f"{count} optional fields in schema — ensure undefined is handled",
                "Optional fields return `undefined` when not set. Ensure all "
                "access sites handle the missing case.",
                analysis.file_path,
                1,
                1,
            )
        ]


class MissingIndexForQuery(Rule):
    """Project-level: query filter fields that no index covers."""

    id = "schema/missing-index-for-query"
    category = Category.SCHEMA

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return []

    def check_project(self, ctx: ProjectContext) -> list[Diagnostic]:
        if not ctx.has_schema:
            return []

        if not ctx.all_index_definitions and ctx.all_filter_field_names:
            return [
                self._diagnostic(
                    Severity.WARNING,
                    "Schema exists but no database indexes are defined",
                    "Define indexes on fields you query frequently to avoid full "
                    "table scans.",
                    "convex/schema.ts",
                    1,
                    1,
                )
            ]

        # A field anywhere in a compound index counts as covered.
        indexed_fields = {
            name for idx in ctx.all_index_definitions for name in idx.fields
        }
        return [
            self._diagnostic(
                Severity.WARNING,
                f"Query filters on field `{ff.field_name}` but no index covers "
                "that field",
                "Add an index starting with this field to avoid full table scans.",
                "convex/schema.ts",
                ff.line,
                ff.col,
            )
            for ff in ctx.all_filter_field_names
            if ff.field_name not in indexed_fields
        ]


def normalize_index_token(token: str) -> str:
    """Lower-case ASCII alphanumerics; collapse everything else to one underscore."""
    out: list[str] = []
    prev_underscore = False
    for ch in token:
        if ch.isascii() and ch.isalnum():
            prev_underscore = False
            out.append(ch.lower())
        elif not prev_underscore:
            prev_underscore = True
            out.append("_")
    return "".join(out).strip("_")


def expected_index_name(fields: list[str]) -> str | None:
    """Return the conventional ``by_a_and_b`` name for the given fields."""
    normalized = [t for t in map(normalize_index_token, fields) if t]
    if not normalized:
        return None
    return "by_" + "_and_".join(normalized)


class IndexNameIncludesFields(Rule):
    """Index names should list all their fields in order."""

    id = "schema/index-name-includes-fields"
    category = Category.SCHEMA

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        diagnostics = []
        for idx in analysis.index_definitions:
            expected = expected_index_name(idx.fields)
            if expected is None or idx.name == expected:
                continue
            diagnostics.append(
                self._diagnostic(
                    Severity.WARNING,
                    f"Index name `{idx.name}` should include all fields in order "
                    f"(expected `{expected}`)",
                    "Convex index naming convention is `by_field1_and_field2` for "
                    'fields `["field1", "field2"]`.',
                    analysis.file_path,
                    idx.line,
                    1,
                )
            )
        return diagnostics