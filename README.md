# convex_analyzer

A rule engine that turns facts collected from a Convex backend project into
diagnostics about security, performance and schema design.

You describe each source file with a `FileAnalysis` and the project as a whole
with a `ProjectContext`, then run the rules over them. Each finding comes back
as a `Diagnostic` carrying the rule id, a `Severity`, a `Category`, a message,
a help text, and the file, line and column it refers to.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Usage

```python
from convex_analyzer.model import ConvexFunction, FileAnalysis, FunctionKind, ProjectContext
from convex_analyzer.registry import RuleRegistry

analysis = FileAnalysis(
    file_path="convex/messages.ts",
    functions=[
        ConvexFunction(name="list", kind=FunctionKind.QUERY, span_line=5, span_col=1),
    ],
)

registry = RuleRegistry()
for diagnostic in registry.run(analysis):
    print(diagnostic.rule, diagnostic.severity, diagnostic.message)

project = ProjectContext(has_schema=False)
for diagnostic in registry.run_project(project):
    print(diagnostic.rule, diagnostic.message)
```

Both `run` and `run_project` take an optional `enabled` callable. It receives
each rule id, such as `"perf/unbounded-collect"`, and returns whether that rule
should run; without it every rule runs:

```python
security_only = registry.run(analysis, lambda rule_id: rule_id.startswith("security/"))
```

`RuleRegistry()` holds every rule in a fixed order; `registry.rules()` returns
them as a tuple. Pass your own iterable of rules, `RuleRegistry(rules=[...])`,
to run a different set.

## Rules

Every rule is a subclass of `convex_analyzer.model.Rule`. It has an `id` and a
`category`, a `check(analysis)` method for one file, and a
`check_project(ctx)` method for project-wide checks, which returns no
diagnostics unless the rule overrides it.

- `convex_analyzer.security`: missing argument and return validators, missing
  authentication checks, `api.` references passed to scheduler and `ctx.run*`
  calls, hardcoded secrets, `.env.local` not in `.gitignore`, spoofable
  access-control arguments, `v.id()` without a table, unauthenticated HTTP
  actions, conditional exports, `v.any()` in public arguments, raw arguments
  passed to `ctx.db.patch`, and HTTP routes without an `OPTIONS` handler.
  `path_has_segment(path, segment)` is the path helper these rules use.
- `convex_analyzer.performance`: unbounded `.collect()`, `.filter()` without an
  index, `Date.now()` in queries, ctx calls in loops, three or more sequential
  `ctx.run*` calls in an action, `ctx.runAction` inside actions,
  `ctx.runQuery`/`ctx.runMutation` inside queries and mutations, foreign keys
  without an index, public actions, collect-then-filter, large inline writes,
  public queries without pagination, and paginated functions missing
  `paginationOptsValidator`.
- `convex_analyzer.schema`: missing schema file, validators nested more than
  three levels, arrays of `v.id()`, redundant prefix indexes, tables with eight
  or more indexes, search indexes without `filterFields`, five or more optional
  fields in a schema file, filter fields that no index covers, and index names
  that do not follow `by_field1_and_field2`. `expected_index_name(fields)` and
  `normalize_index_token(token)` compute the expected name.

## What this package does not do

- It does not read or parse TypeScript or JavaScript. Filling in `FileAnalysis`
  and `ProjectContext` from a project's files is up to the caller.
- It has no command-line tool; it is used as a library.
- It does not compute a health score or format reports; it returns
  `Diagnostic` objects and leaves presentation to the caller.