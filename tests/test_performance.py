import pytest

from convex_analyzer.model import (
    CallLocation,
    Category,
    ConvexFunction,
    CtxCall,
    FileAnalysis,
    FunctionKind,
    IndexDef,
    ProjectContext,
    SchemaIdField,
    Severity,
)
from convex_analyzer.performance import (
    ActionFromClient,
    CollectThenFilter,
    DateNowInQuery,
    FilterWithoutIndex,
    HelperVsRun,
    LargeDocumentWrite,
    LoopRunMutation,
    MissingIndexOnForeignKey,
    MissingPaginationOptsValidator,
    NoPaginationForList,
    SequentialRunCalls,
    UnboundedCollect,
    UnnecessaryRunAction,
)


def _func(name, kind, line=1):
    return ConvexFunction(
        name=name,
        kind=kind,
        has_args_validator=True,
        handler_line_count=5,
        span_line=line,
        span_col=1,
    )


def _call(chain, kind, line=5, col=10, fid=None, name=None):
    return CtxCall(
        chain=chain,
        line=line,
        col=col,
        is_awaited=True,
        enclosing_function_kind=kind,
        enclosing_function_id=fid,
        enclosing_function_name=name,
    )


def _users_field():
    return SchemaIdField(
        field_name="userId",
        table_ref="users",
        table_id="table@users",
        file="tests/fixtures/perf_patterns.ts",
        line=5,
        col=10,
    )


# MissingIndexOnForeignKey


def test_missing_index_on_foreign_key_fires():
    ctx = ProjectContext(all_schema_id_fields=[_users_field()])
    diagnostics = MissingIndexOnForeignKey().check_project(ctx)
    assert len(diagnostics) == 1
    assert "Foreign key field referencing `users` has no index" in diagnostics[0].message
    assert diagnostics[0].severity is Severity.WARNING
    assert "v.id()" in diagnostics[0].help
    assert diagnostics[0].file == "tests/fixtures/perf_patterns.ts"
    assert (diagnostics[0].line, diagnostics[0].column) == (5, 10)


def test_missing_index_on_foreign_key_not_fired_when_index_exists():
    ctx = ProjectContext(
        all_schema_id_fields=[_users_field()],
        all_index_definitions=[
            IndexDef(table="table@users", name="by_user", fields=["userId"], line=10)
        ],
    )
    assert MissingIndexOnForeignKey().check_project(ctx) == []


def test_missing_index_on_foreign_key_matches_table_specific():
    ctx = ProjectContext(
        all_schema_id_fields=[_users_field()],
        all_index_definitions=[
            IndexDef(table="table@orders", name="by_user", fields=["userId"], line=10)
        ],
    )
    diagnostics = MissingIndexOnForeignKey().check_project(ctx)
    assert len(diagnostics) == 1
    assert "users" in diagnostics[0].message


def test_missing_index_on_foreign_key_empty_field_name():
    field = _users_field()
    field.field_name = ""
    field.table_id = ""
    ctx = ProjectContext(all_schema_id_fields=[field])
    assert MissingIndexOnForeignKey().check_project(ctx) == []


def test_missing_index_on_foreign_key_deduplicates():
    ctx = ProjectContext(all_schema_id_fields=[_users_field(), _users_field()])
    assert len(MissingIndexOnForeignKey().check_project(ctx)) == 1


def test_missing_index_on_foreign_key_per_file_returns_empty():
    assert MissingIndexOnForeignKey().check(FileAnalysis()) == []


# ActionFromClient


def test_action_from_client_fires_for_public_action():
    analysis = FileAnalysis(functions=[_func("sendEmail", FunctionKind.ACTION)])
    diagnostics = ActionFromClient().check(analysis)
    assert len(diagnostics) == 1
    assert "Public action" in diagnostics[0].message
    assert "can be called directly from client" in diagnostics[0].message
    assert diagnostics[0].severity is Severity.WARNING


def test_action_from_client_ignores_internal_action():
    analysis = FileAnalysis(functions=[_func("sendEmail", FunctionKind.INTERNAL_ACTION)])
    assert ActionFromClient().check(analysis) == []


def test_action_from_client_ignores_queries_and_mutations():
    analysis = FileAnalysis(
        functions=[
            _func("getItems", FunctionKind.QUERY),
            _func("updateItem", FunctionKind.MUTATION, line=10),
        ]
    )
    assert ActionFromClient().check(analysis) == []


# CollectThenFilter


def test_collect_then_filter_fires():
    analysis = FileAnalysis(
        collect_variable_filters=[
            CallLocation(
                line=10,
                col=5,
                detail="Variable `items` from .collect() is later filtered with .filter()",
            )
        ]
    )
    diagnostics = CollectThenFilter().check(analysis)
    assert len(diagnostics) == 1
    assert "items" in diagnostics[0].message
    assert diagnostics[0].severity is Severity.WARNING
    assert "Collecting all results" in diagnostics[0].help


def test_collect_then_filter_empty_when_no_pattern():
    assert CollectThenFilter().check(FileAnalysis()) == []


def test_collect_then_filter_multiple():
    analysis = FileAnalysis(
        collect_variable_filters=[
            CallLocation(line=10, col=5, detail="first pattern"),
            CallLocation(line=20, col=5, detail="second pattern"),
        ]
    )
    assert len(CollectThenFilter().check(analysis)) == 2


# LargeDocumentWrite


def test_large_document_write_fires():
    analysis = FileAnalysis(
        large_writes=[CallLocation(line=15, col=3, detail="ctx.db.insert with 25 properties")]
    )
    diagnostics = LargeDocumentWrite().check(analysis)
    assert len(diagnostics) == 1
    assert "Large inline document write" in diagnostics[0].message
    assert "25 properties" in diagnostics[0].message
    assert diagnostics[0].severity is Severity.INFO
    assert "1 MiB" in diagnostics[0].help


def test_large_document_write_empty():
    assert LargeDocumentWrite().check(FileAnalysis()) == []


def test_large_document_write_multiple():
    analysis = FileAnalysis(
        large_writes=[
            CallLocation(line=15, col=3, detail="ctx.db.insert with 25 properties"),
            CallLocation(line=30, col=3, detail="ctx.db.replace with 30 properties"),
        ]
    )
    assert len(LargeDocumentWrite().check(analysis)) == 2


# NoPaginationForList


def test_no_pagination_for_list_no_public_query():
    analysis = FileAnalysis(
        functions=[_func("getItems", FunctionKind.INTERNAL_QUERY)],
        ctx_calls=[
            _call("ctx.db.query.collect", FunctionKind.INTERNAL_QUERY, name="getItems")
        ],
    )
    assert NoPaginationForList().check(analysis) == []


def test_no_pagination_for_list_no_collect():
    analysis = FileAnalysis(functions=[_func("getItems", FunctionKind.QUERY)])
    assert NoPaginationForList().check(analysis) == []


def test_no_pagination_emits_one_diagnostic_per_file():
    analysis = FileAnalysis(
        functions=[
            _func("getItems", FunctionKind.QUERY),
            _func("getOtherItems", FunctionKind.QUERY, line=10),
        ],
        ctx_calls=[
            _call("ctx.db.query.collect", FunctionKind.QUERY, line=5, name="getItems"),
            _call("ctx.db.query.collect", FunctionKind.QUERY, line=15, name="getOtherItems"),
        ],
    )
    diagnostics = NoPaginationForList().check(analysis)
    assert len(diagnostics) == 1
    assert "Public query with `.collect()`" in diagnostics[0].message
    assert diagnostics[0].severity is Severity.WARNING
    assert diagnostics[0].line == 5


def test_no_pagination_does_not_cross_trigger_from_mutation_collect():
    analysis = FileAnalysis(
        functions=[
            _func("listItems", FunctionKind.QUERY),
            _func("mutateItems", FunctionKind.MUTATION, line=10),
        ],
        ctx_calls=[
            _call("ctx.db.query.collect", FunctionKind.MUTATION, line=12, col=8)
        ],
    )
    assert NoPaginationForList().check(analysis) == []


def test_no_pagination_ignores_take_chain():
    analysis = FileAnalysis(
        ctx_calls=[_call("ctx.db.query.take.collect", FunctionKind.QUERY)]
    )
    assert NoPaginationForList().check(analysis) == []


# Identity


def test_rule_ids_are_correct():
    analysis = FileAnalysis(
        functions=[_func("run", FunctionKind.ACTION)],
        collect_variable_filters=[CallLocation(line=1, col=1, detail="x")],
        large_writes=[CallLocation(line=1, col=1, detail="x")],
        ctx_calls=[_call("ctx.db.query.collect", FunctionKind.QUERY)],
    )
    ctx = ProjectContext(all_schema_id_fields=[_users_field()])
    assert (
        MissingIndexOnForeignKey().check_project(ctx)[0].rule
        == "perf/missing-index-on-foreign-key"
    )
    assert ActionFromClient().check(analysis)[0].rule == "perf/action-from-client"
    assert CollectThenFilter().check(analysis)[0].rule == "perf/collect-then-filter"
    assert LargeDocumentWrite().check(analysis)[0].rule == "perf/large-document-write"
    assert NoPaginationForList().check(analysis)[0].rule == "perf/no-pagination-for-list"


@pytest.mark.parametrize(
    "rule",
    [
        MissingIndexOnForeignKey(),
        ActionFromClient(),
        CollectThenFilter(),
        LargeDocumentWrite(),
        NoPaginationForList(),
    ],
)
def test_diagnostics_carry_performance_category(rule):
    analysis = FileAnalysis(
        functions=[_func("run", FunctionKind.ACTION)],
        collect_variable_filters=[CallLocation(line=1, col=1, detail="x")],
        large_writes=[CallLocation(line=1, col=1, detail="x")],
        ctx_calls=[_call("ctx.db.query.collect", FunctionKind.QUERY)],
    )
    ctx = ProjectContext(all_schema_id_fields=[_users_field()])
    diagnostics = rule.check(analysis) + rule.check_project(ctx)
    assert diagnostics
    assert all(d.category is Category.PERFORMANCE for d in diagnostics)
    assert all(d.rule == rule.id for d in diagnostics)


# Remaining per-file rules


def test_unbounded_collect_skips_take():
    analysis = FileAnalysis(
        collect_calls=[
            CallLocation(line=3, col=4, detail="ctx.db.query.collect"),
            CallLocation(line=7, col=4, detail="ctx.db.query.take.collect"),
        ]
    )
    diagnostics = UnboundedCollect().check(analysis)
    assert [d.line for d in diagnostics] == [3]
    assert diagnostics[0].severity is Severity.ERROR


def test_filter_without_index_reports_each_call():
    analysis = FileAnalysis(
        filter_calls=[CallLocation(line=2, col=1), CallLocation(line=9, col=3)]
    )
    assert [(d.line, d.column) for d in FilterWithoutIndex().check(analysis)] == [
        (2, 1),
        (9, 3),
    ]


def test_date_now_in_query():
    analysis = FileAnalysis(date_now_calls=[CallLocation(line=4, col=2)])
    diagnostics = DateNowInQuery().check(analysis)
    assert len(diagnostics) == 1
    assert diagnostics[0].message == "`Date.now()` in a query function breaks caching"


def test_loop_run_mutation_message():
    analysis = FileAnalysis(
        loop_ctx_calls=[CallLocation(line=4, col=2, detail="ctx.runMutation")]
    )
    diagnostics = LoopRunMutation().check(analysis)
    assert diagnostics[0].message == "ctx call `ctx.runMutation` inside a loop"
    assert diagnostics[0].severity is Severity.ERROR


def test_sequential_run_calls_threshold():
    calls = [
        _call("ctx.runQuery", FunctionKind.ACTION, line=n, fid="doWork")
        for n in (3, 4)
    ]
    analysis = FileAnalysis(ctx_calls=calls)
    assert SequentialRunCalls().check(analysis) == []

    calls.append(_call("ctx.runMutation", FunctionKind.ACTION, line=5, fid="doWork"))
    diagnostics = SequentialRunCalls().check(FileAnalysis(ctx_calls=calls))
    assert len(diagnostics) == 1
    assert "Action `doWork` has 3 sequential ctx.run* calls" in diagnostics[0].message
    assert diagnostics[0].line == 3


def test_sequential_run_calls_ignores_non_actions():
    calls = [_call("ctx.runQuery", FunctionKind.MUTATION, line=n, fid="m") for n in range(5)]
    assert SequentialRunCalls().check(FileAnalysis(ctx_calls=calls)) == []


def test_unnecessary_run_action():
    analysis = FileAnalysis(
        ctx_calls=[
            _call("ctx.runAction", FunctionKind.INTERNAL_ACTION, line=2),
            _call("ctx.runAction", FunctionKind.MUTATION, line=8),
        ]
    )
    diagnostics = UnnecessaryRunAction().check(analysis)
    assert [d.line for d in diagnostics] == [2]


def test_helper_vs_run():
    analysis = FileAnalysis(
        ctx_calls=[
            _call("ctx.runQuery", FunctionKind.QUERY, line=2),
            _call("ctx.runMutation", FunctionKind.INTERNAL_MUTATION, line=3),
            _call("ctx.runQuery", FunctionKind.ACTION, line=4),
            _call("ctx.runQuery", None, line=5),
        ]
    )
    diagnostics = HelperVsRun().check(analysis)
    assert [d.line for d in diagnostics] == [2, 3]
    assert diagnostics[0].message == "`ctx.runQuery` used inside a query/mutation"


def test_missing_pagination_opts_validator():
    analysis = FileAnalysis(
        paginated_functions=[
            CallLocation(line=3, col=1, detail="list"),
            CallLocation(line=4, col=1, detail="list"),
            CallLocation(line=8, col=1, detail="ok"),
            CallLocation(line=9, col=1, detail=""),
        ],
        pagination_validator_functions=["ok"],
    )
    diagnostics = MissingPaginationOptsValidator().check(analysis)
    assert len(diagnostics) == 1
    assert diagnostics[0].message == (
        "Paginated query `list` is missing `paginationOptsValidator` in args"
    )
    assert diagnostics[0].line == 3