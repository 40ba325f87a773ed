"""Core data model shared by the analyzer rules."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar


class Severity(enum.Enum):
    """How serious a diagnostic is."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    def __str__(self) -> str:
        return self.value


class Category(enum.Enum):
    """Rule category a diagnostic belongs to."""

    SECURITY = "security"
    PERFORMANCE = "performance"
    CORRECTNESS = "correctness"
    SCHEMA = "schema"
    ARCHITECTURE = "architecture"
    CONFIGURATION = "configuration"
    CLIENT = "client"

    def __str__(self) -> str:
        return self.value


@dataclass
class Diagnostic:
    """A single finding reported by a rule."""

    rule: str
    severity: Severity
    category: Category
    message: str
    help: str
    file: str
    line: int
    column: int


class FunctionKind(enum.Enum):
    """The Convex function constructor used to define a function."""

    QUERY = "query"
    MUTATION = "mutation"
    ACTION = "action"
    HTTP_ACTION = "httpAction"
    INTERNAL_QUERY = "internalQuery"
    INTERNAL_MUTATION = "internalMutation"
    INTERNAL_ACTION = "internalAction"

    @classmethod
    def from_callee(cls, name: str) -> FunctionKind | None:
        """Return the kind for a constructor name, or None if it is not one."""
        try:
            return cls(name)
        except ValueError:
            return None

    def is_action(self) -> bool:
        return self in (FunctionKind.ACTION, FunctionKind.INTERNAL_ACTION)

    def is_query(self) -> bool:
        return self in (FunctionKind.QUERY, FunctionKind.INTERNAL_QUERY)

    def is_mutation(self) -> bool:
        return self in (FunctionKind.MUTATION, FunctionKind.INTERNAL_MUTATION)


_PUBLIC_KINDS = frozenset(
    {
        FunctionKind.QUERY,
        FunctionKind.MUTATION,
        FunctionKind.ACTION,
        FunctionKind.HTTP_ACTION,
    }
)


@dataclass
class ConvexFunction:
    """An exported Convex function found in a file."""

    name: str
    kind: FunctionKind
    has_args_validator: bool = False
    has_any_validator_in_args: bool = False
    arg_names: list[str] = field(default_factory=list)
    has_internal_secret: bool = False
    is_intentionally_public: bool = False
    has_return_validator: bool = False
    has_auth_check: bool = False
    handler_line_count: int = 0
    span_line: int = 0
    span_col: int = 0

    def is_public(self) -> bool:
        return self.kind in _PUBLIC_KINDS

    def kind_str(self) -> str:
        return self.kind.value


@dataclass
class ImportInfo:
    source: str
    specifiers: list[str] = field(default_factory=list)
    line: int = 0


@dataclass
class CtxCall:
    """A call made through the handler's ``ctx`` object."""

    chain: str
    line: int = 0
    col: int = 0
    is_awaited: bool = False
    is_returned: bool = False
    assigned_to: str | None = None
    enclosing_function_kind: FunctionKind | None = None
    enclosing_function_id: str | None = None
    enclosing_function_name: str | None = None
    enclosing_function_has_internal_secret: bool = False
    first_arg_chain: str | None = None


@dataclass
class CallLocation:
    line: int
    col: int
    detail: str = ""


@dataclass
class DeprecatedCall:
    name: str
    replacement: str
    line: int = 0
    col: int = 0


@dataclass
class IndexDef:
    table: str
    name: str
    fields: list[str] = field(default_factory=list)
    line: int = 0


@dataclass
class HttpRoute:
    method: str = ""
    path: str = ""
    is_webhook: bool = False
    line: int = 0


@dataclass
class SchemaIdField:
    field_name: str = ""
    table_ref: str = ""
    table_id: str = ""
    file: str = ""
    line: int = 0
    col: int = 0


@dataclass
class FilterField:
    field_name: str = ""
    line: int = 0
    col: int = 0


@dataclass
class SearchIndexDef:
    table: str = ""
    name: str = ""
    has_filter_fields: bool = False
    line: int = 0


@dataclass
class ConvexHookCall:
    hook_name: str = ""
    line: int = 0
    col: int = 0
    in_render_body: bool = False


@dataclass
class FileAnalysis:
    """Everything extracted from one source file that the rules inspect."""

    file_path: str = ""
    has_use_node: bool = False
    functions: list[ConvexFunction] = field(default_factory=list)
    imports: list[ImportInfo] = field(default_factory=list)
    ctx_calls: list[CtxCall] = field(default_factory=list)
    collect_calls: list[CallLocation] = field(default_factory=list)
    filter_calls: list[CallLocation] = field(default_factory=list)
    date_now_calls: list[CallLocation] = field(default_factory=list)
    loop_ctx_calls: list[CallLocation] = field(default_factory=list)
    deprecated_calls: list[DeprecatedCall] = field(default_factory=list)
    hardcoded_secrets: list[CallLocation] = field(default_factory=list)
    old_syntax_functions: list[CallLocation] = field(default_factory=list)
    exported_function_count: int = 0
    schema_nesting_depth: int = 0
    schema_array_id_fields: list[CallLocation] = field(default_factory=list)
    index_definitions: list[IndexDef] = field(default_factory=list)
    first_calls: list[CallLocation] = field(default_factory=list)
    awaited_identifiers: list[str] = field(default_factory=list)
    cron_api_refs: list[CallLocation] = field(default_factory=list)
    generic_id_validators: list[CallLocation] = field(default_factory=list)
    conditional_exports: list[CallLocation] = field(default_factory=list)
    non_deterministic_calls: list[CallLocation] = field(default_factory=list)
    throw_generic_errors: list[CallLocation] = field(default_factory=list)
    raw_arg_patches: list[CallLocation] = field(default_factory=list)
    http_routes: list[HttpRoute] = field(default_factory=list)
    schema_id_fields: list[SchemaIdField] = field(default_factory=list)
    collect_variable_filters: list[CallLocation] = field(default_factory=list)
    filter_field_names: list[FilterField] = field(default_factory=list)
    search_index_definitions: list[SearchIndexDef] = field(default_factory=list)
    large_writes: list[CallLocation] = field(default_factory=list)
    optional_schema_fields: list[CallLocation] = field(default_factory=list)
    unsupported_validator_calls: list[CallLocation] = field(default_factory=list)
    query_delete_calls: list[CallLocation] = field(default_factory=list)
    cron_helper_calls: list[CallLocation] = field(default_factory=list)
    cron_non_reference_calls: list[CallLocation] = field(default_factory=list)
    storage_metadata_calls: list[CallLocation] = field(default_factory=list)
    paginated_functions: list[CallLocation] = field(default_factory=list)
    pagination_validator_functions: list[str] = field(default_factory=list)
    unexported_function_count: int = 0
    convex_hook_calls: list[ConvexHookCall] = field(default_factory=list)
    has_convex_provider: bool = False


@dataclass
class ProjectContext:
    """Project-wide facts gathered after all files are analyzed."""

    has_schema: bool = False
    has_auth_config: bool = False
    has_convex_json: bool = False
    has_env_local: bool = False
    env_gitignored: bool = False
    uses_auth: bool = False
    has_generated_dir: bool = False
    has_tsconfig: bool = False
    node_version_from_config: str | None = None
    generated_files_modified: bool = False
    all_index_definitions: list[IndexDef] = field(default_factory=list)
    all_schema_id_fields: list[SchemaIdField] = field(default_factory=list)
    all_filter_field_names: list[FilterField] = field(default_factory=list)


class Rule(ABC):
    """Base class for analyzer rules.

    Subclasses set ``id`` and ``category`` and implement :meth:`check`.
    Project-level rules override :meth:`check_project` as well.
    """

    id: ClassVar[str]
    category: ClassVar[Category]

    @abstractmethod
    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        """Return the diagnostics for one analyzed file."""

    def check_project(self, ctx: ProjectContext) -> list[Diagnostic]:
        """Return project-level diagnostics; none by default."""
        return []

    def _diagnostic(
        self,
        severity: Severity,
        message: str,
        help: str,
        file: str,
        line: int,
        column: int,
    ) -> Diagnostic:
        return Diagnostic(
            rule=self.id,
            severity=severity,
            category=self.category,
            message=message,
            help=help,
            file=file,
            line=line,
            column=column,
        )