"""Security rules: validators, authentication, secrets and access control."""

from __future__ import annotations

from pathlib import PurePosixPath

from .model import (
    Category,
    Diagnostic,
    FileAnalysis,
    FunctionKind,
    ProjectContext,
    Rule,
    Severity,
)

__all__ = [
    "path_has_segment",
    "MissingArgValidators",
    "MissingReturnValidators",
    "MissingAuthCheck",
    "InternalApiMisuse",
    "HardcodedSecrets",
    "EnvNotGitignored",
    "SpoofableAccessControl",
    "MissingTableId",
    "MissingHttpAuth",
    "ConditionalFunctionExport",
    "GenericMutationArgs",
    "OverlyBroadPatch",
    "HttpMissingCors",
]


def path_has_segment(path: str, segment: str) -> bool:
    """Return True if any component of ``path`` equals ``segment``."""
    normalized = path.replace("\\", "/")
    return segment in PurePosixPath(normalized).parts


def _unguarded(function) -> bool:
    return not (
        function.has_auth_check
        or function.has_internal_secret
        or function.is_intentionally_public
    )


class MissingArgValidators(Rule):
    id = "security/missing-arg-validators"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.ERROR,
                f"{f.kind_str()} `{f.name}` has no argument validators",
                "Add `args: { ... }` with validators for all parameters. Convex "
                "guidance requires validators for query/mutation/action and "
                "internal variants.",
                analysis.file_path,
                f.span_line,
                f.span_col,
            )
            for f in analysis.functions
            if f.kind is not FunctionKind.HTTP_ACTION and not f.has_args_validator
        ]


class MissingReturnValidators(Rule):
    id = "security/missing-return-validators"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                f"{f.kind_str()} `{f.name}` has no return value validator",
                "Add `returns: v.object({...})` to validate the return type and "
                "prevent accidental data leaks.",
                analysis.file_path,
                f.span_line,
                f.span_col,
            )
            for f in analysis.functions
            if f.is_public() and not f.has_return_validator
        ]


class MissingAuthCheck(Rule):
    id = "security/missing-auth-check"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        # Admin/migration directories are only reached from admin tooling.
        if path_has_segment(analysis.file_path, "_scripts") or path_has_segment(
            analysis.file_path, "_internal"
        ):
            return []
        return [
            self._diagnostic(
                Severity.WARNING,
                f"Public {f.kind_str()} `{f.name}` does not check authentication",
                "Consider adding `const identity = await ctx.auth.getUserIdentity()` "
                "to verify the caller is authenticated.",
                analysis.file_path,
                f.span_line,
                f.span_col,
            )
            for f in analysis.functions
            if f.is_public() and _unguarded(f)
        ]


_SCHEDULER_OR_RUN_PREFIXES = (
    "ctx.scheduler",
    "ctx.runMutation",
    "ctx.runQuery",
    "ctx.runAction",
)


class InternalApiMisuse(Rule):
    id = "security/internal-api-misuse"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.ERROR,
                f"`{call.chain}` is called with public API reference "
                f"`{call.first_arg_chain or 'unknown'}`",
                "Use `internal.` instead of `api.` for server-to-server calls. "
                "Public API references expose endpoints that bypass internal "
                "access controls.",
                analysis.file_path,
                call.line,
                call.col,
            )
            for call in analysis.ctx_calls
            if call.chain.startswith(_SCHEDULER_OR_RUN_PREFIXES)
            and call.first_arg_chain is not None
            and call.first_arg_chain.startswith("api.")
            and not call.enclosing_function_has_internal_secret
        ]


class HardcodedSecrets(Rule):
    id = "security/hardcoded-secrets"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.ERROR,
                f"Hardcoded secret detected: {found.detail}",
                "Use environment variables via `process.env.SECRET_NAME` instead "
                "of hardcoding secrets in source code.",
                analysis.file_path,
                found.line,
                found.col,
            )
            for found in analysis.hardcoded_secrets
        ]


class EnvNotGitignored(Rule):
    """Project-level: .env.local exists but is not listed in .gitignore."""

    id = "security/env-not-gitignored"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return []

    def check_project(self, ctx: ProjectContext) -> list[Diagnostic]:
        if ctx.has_env_local and not ctx.env_gitignored:
            return [
                self._diagnostic(
                    Severity.ERROR,
                    ".env.local exists but is not in .gitignore",
                    "Add `.env.local` to your .gitignore to prevent committing secrets.",
                    ".env.local",
                    0,
                    0,
                )
            ]
        return []


_SENSITIVE_ARG_NAMES = (
    "userId",
    "user_id",
    "role",
    "isAdmin",
    "admin",
    "ownerId",
    "organizationId",
    "orgId",
    "teamId",
    "accountId",
    "permission",
    "permissions",
)


def _sensitive_name(arg: str) -> str | None:
    if not arg.isascii():
        return None
    lowered = arg.lower()
    return next((c for c in _SENSITIVE_ARG_NAMES if c.lower() == lowered), None)


class SpoofableAccessControl(Rule):
    id = "security/spoofable-access-control"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        diagnostics = []
        for f in analysis.functions:
            if not (f.is_public() and _unguarded(f)):
                continue
            risky = [name for name in map(_sensitive_name, f.arg_names) if name]
            if not risky:
                continue
            diagnostics.append(
                self._diagnostic(
                    Severity.WARNING,
                    f"Public {f.kind_str()} `{f.name}` appears to use spoofable "
                    f"access-control args: {', '.join(risky)}",
                    "Avoid authorizing requests using client-provided role/user "
                    "identifiers. Verify access with `ctx.auth.getUserIdentity()` "
                    "and server-side ownership checks.",
                    analysis.file_path,
                    f.span_line,
                    f.span_col,
                )
            )
        return diagnostics


class MissingTableId(Rule):
    id = "security/missing-table-id"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                "Argument validator uses `v.id()` without explicit table: "
                f"{loc.detail}",
                'Use `v.id("tableName")` to prevent cross-table ID confusion. '
                "Matches the ESLint `explicit-table-ids` rule.",
                analysis.file_path,
                loc.line,
                loc.col,
            )
            for loc in analysis.generic_id_validators
        ]


class MissingHttpAuth(Rule):
    id = "security/missing-http-auth"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.ERROR,
                f"httpAction `{f.name}` does not check authentication",
                "HTTP actions are publicly accessible. Add "
                "`ctx.auth.getUserIdentity()` or check the Authorization header.",
                analysis.file_path,
                f.span_line,
                f.span_col,
            )
            for f in analysis.functions
            if f.kind is FunctionKind.HTTP_ACTION and _unguarded(f)
        ]


class ConditionalFunctionExport(Rule):
    id = "security/conditional-function-export"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.ERROR,
                "Conditional function export based on environment variable",
                "Do not condition Convex function exports on environment "
                "variables. This can cause inconsistent behavior between "
                "deployments.",
                analysis.file_path,
                loc.line,
                loc.col,
            )
            for loc in analysis.conditional_exports
        ]


class GenericMutationArgs(Rule):
    id = "security/generic-mutation-args"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                f"Public {f.kind_str()} `{f.name}` uses `v.any()` in argument "
                "validators",
                "Using `v.any()` defeats the purpose of validation. Use specific "
                "validators for type safety and security.",
                analysis.file_path,
                f.span_line,
                f.span_col,
            )
            for f in analysis.functions
            if f.is_public() and f.has_any_validator_in_args
        ]


class OverlyBroadPatch(Rule):
    id = "security/overly-broad-patch"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        return [
            self._diagnostic(
                Severity.WARNING,
                loc.detail,
                "Passing raw client args to `ctx.db.patch` is a mass-assignment "
                "vulnerability. Destructure and pass only the allowed fields.",
                analysis.file_path,
                loc.line,
                loc.col,
            )
            for loc in analysis.raw_arg_patches
        ]


_ACTIONABLE_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH"})


class HttpMissingCors(Rule):
    id = "security/http-missing-cors"
    category = Category.SECURITY

    def check(self, analysis: FileAnalysis) -> list[Diagnostic]:
        methods_by_path: dict[str, list[str]] = {}
        for route in analysis.http_routes:
            if not route.is_webhook:
                methods_by_path.setdefault(route.path, []).append(route.method)

        diagnostics = []
        for path in sorted(methods_by_path):
            methods = [m.upper() if m.isascii() else m for m in methods_by_path[path]]
            has_options = "OPTIONS" in methods
            has_actionable = any(m in _ACTIONABLE_METHODS for m in methods)
            if not has_actionable or has_options:
                continue
            line = next(
                (r.line for r in analysis.http_routes if r.path == path), 0
            )
            diagnostics.append(
                self._diagnostic(
                    Severity.WARNING,
                    f"HTTP route `{path}` has no OPTIONS handler for CORS",
                    "Add an OPTIONS handler to support CORS preflight requests. "
                    "See the Convex CORS guide.",
                    analysis.file_path,
                    line,
                    0,
                )
            )
        return diagnostics