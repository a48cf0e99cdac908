"""teamchat-rbac: administrative CLI for roles and assignments."""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import typer
from sqlalchemy.ext.asyncio import AsyncSession

from .common.logging import bind_request_context, clear_request_context, setup_logging
from .core.rbac.errors import RbacError
from .core.rbac.types import AuditTargetType
from .db import build_sessionmaker, create_engine, create_schema, session_scope
from .features.rbac import (
    AssignmentChange,
    AuditEntryOut,
    EffectivePermissions,
    PermissionOut,
    RbacEngine,
    RoleOut,
    sort_roles_by_position,
)
from .settings import Settings, get_settings

T = TypeVar("T")

app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Team chat RBAC engine CLI (init-db, roles, effective, conflicts, assign, audit).",
)

JsonOption = typer.Option(False, "--json", help="Emit JSON instead of a table.")


@asynccontextmanager
async def _open(settings: Settings) -> AsyncIterator[tuple[RbacEngine, AsyncSession]]:
    db_engine = create_engine(settings)
    try:
        async with session_scope(build_sessionmaker(db_engine)) as session:
            yield RbacEngine.from_settings(settings), session
    finally:
        await db_engine.dispose()


def _run(action: Callable[[RbacEngine, AsyncSession], Awaitable[T]]) -> T:
    settings = get_settings()
    setup_logging(settings)
    bind_request_context(uuid.uuid4().hex[:12])

    async def runner() -> T:
        async with _open(settings) as (engine, session):
            return await action(engine, session)

    try:
        return asyncio.run(runner())
    except RbacError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        clear_request_context()


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _effective_payload(effective: EffectivePermissions) -> dict[str, Any]:
    return {
        "user_id": effective.user_id,
        "highest_role": effective.highest_role.slug,
        "is_administrator": effective.is_administrator,
        "roles": [role.slug for role in effective.roles],
        "permissions": sorted(effective.permissions),
    }


async def _role_ids_for(engine: RbacEngine, session: AsyncSession, slugs: list[str]) -> list[uuid.UUID]:
    store = engine.store(session)
    ids: list[uuid.UUID] = []
    for slug in slugs:
        role = await store.get_role_by_slug(slug)
        if role is None:
            typer.echo(f"error: unknown role '{slug}'", err=True)
            raise typer.Exit(code=1)
        ids.append(role.id)
    return ids


@app.callback()
def _main(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


@app.command(name="init-db", help="Create tables and seed the permission catalog and built-in roles.")
def init_db() -> None:
    async def action(engine: RbacEngine, session: AsyncSession) -> int:
        await create_schema(session.bind)
        await engine.bootstrap(session)
        return len(await engine.store(session).list_roles())

    total = _run(action)
    typer.echo(f"Database ready ({total} roles).")


@app.command(name="permissions", help="List the permission catalog.")
def permissions(
    category: str | None = typer.Option(None, "--category", "-c", help="Only this category."),
    as_json: bool = JsonOption,
) -> None:
    settings = get_settings()
    setup_logging(settings)
    catalog = RbacEngine.from_settings(settings).catalog
    try:
        definitions = catalog.list_by_category(category) if category else tuple(catalog)
    except ValueError as exc:
        raise typer.BadParameter(f"unknown category '{category}'", param_hint="--category") from exc

    if as_json:
        _echo_json([PermissionOut.model_validate(defn).serializable_dict() for defn in definitions])
        return
    for defn in definitions:
        flags = ",".join(
            flag
            for flag, enabled in (("dangerous", defn.is_dangerous), ("admin", defn.requires_admin))
            if enabled
        )
        typer.echo(f"{defn.key:<24} {defn.category.value:<9} {flags:<16} {defn.label}")


@app.command(name="roles", help="List roles, highest authority first.")
def roles(as_json: bool = JsonOption) -> None:
    async def action(engine: RbacEngine, session: AsyncSession) -> list[RoleOut]:
        listed = await engine.store(session).list_roles()
        return [RoleOut.model_validate(role) for role in sort_roles_by_position(listed)]

    listed = _run(action)
    if as_json:
        _echo_json([role.serializable_dict() for role in listed])
        return
    for role in listed:
        marker = "*" if role.is_built_in else " "
        typer.echo(f"{role.position:>4} {marker} {role.slug:<20} {len(role.permissions):>3} perms  v{role.version}")


@app.command(name="effective", help="Show a user's effective permissions.")
def effective(
    user_id: str = typer.Argument(..., help="External user id."),
    as_json: bool = JsonOption,
) -> None:
    async def action(engine: RbacEngine, session: AsyncSession) -> EffectivePermissions:
        return await engine.assignments(session).effective_permissions(user_id)

    result = _run(action)
    payload = _effective_payload(result)
    if as_json:
        _echo_json(payload)
        return
    typer.echo(f"user:      {payload['user_id']}")
    typer.echo(f"highest:   {payload['highest_role']}")
    typer.echo(f"roles:     {', '.join(payload['roles'])}")
    typer.echo(f"admin:     {'yes' if payload['is_administrator'] else 'no'}")
    for key in payload["permissions"]:
        typer.echo(f"  - {key}")


@app.command(name="conflicts", help="Scan a user's roles for escalation and dangerous permissions.")
def conflicts(
    user_id: str = typer.Argument(..., help="External user id."),
    as_json: bool = JsonOption,
) -> None:
    async def action(engine: RbacEngine, session: AsyncSession) -> list[dict[str, Any]]:
        assigned = await engine.assignments(session).assigned_roles(user_id)
        return [
            {
                "permission": conflict.permission,
                "type": conflict.type.value,
                "roles": [role.slug for role in conflict.roles],
                "message": conflict.message,
            }
            for conflict in engine.detector.detect_permission_conflicts(assigned)
        ]

    found = _run(action)
    if as_json:
        _echo_json(found)
        return
    if not found:
        typer.echo("No conflicts.")
    for conflict in found:
        typer.echo(f"[{conflict['type']}] {conflict['permission']}: {conflict['message']}")


@app.command(name="assign", help="Add or remove roles for a user on behalf of an actor role.")
def assign(
    user_id: str = typer.Argument(..., help="External user id."),
    actor_role: str = typer.Option(..., "--actor-role", help="Slug of the actor's highest role."),
    add: list[str] = typer.Option([], "--add", help="Role slug to add (repeatable)."),
    remove: list[str] = typer.Option([], "--remove", help="Role slug to remove (repeatable)."),
    actor_id: str | None = typer.Option(None, "--actor-id", help="Actor user id recorded in the audit trail."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview the outcome without writing."),
    as_json: bool = JsonOption,
) -> None:
    async def action(engine: RbacEngine, session: AsyncSession) -> dict[str, Any]:
        store = engine.store(session)
        actor = await store.get_role_by_slug(actor_role)
        if actor is None:
            typer.echo(f"error: unknown role '{actor_role}'", err=True)
            raise typer.Exit(code=1)

        changes = [AssignmentChange.add(role_id) for role_id in await _role_ids_for(engine, session, add)]
        changes.extend(
            AssignmentChange.remove(role_id) for role_id in await _role_ids_for(engine, session, remove)
        )
        coordinator = engine.assignments(session)

        if dry_run:
            preview = await coordinator.preview(user_id, changes, actor_highest_role=actor)
            return {
                "dry_run": True,
                "gained": list(preview.gained),
                "lost": list(preview.lost),
                "warnings": list(preview.warnings),
                "conflicts": [conflict.message for conflict in preview.conflicts],
            }

        result = await coordinator.apply(user_id, actor, changes, actor_id=actor_id)
        return {
            "dry_run": False,
            "applied_count": result.applied_count,
            "applied": [f"{c.action.value}:{c.role_id}" for c in result.applied],
            "unchanged": [f"{c.action.value}:{c.role_id}" for c in result.unchanged],
            "errors": [
                {
                    "role_id": str(failure.role_id),
                    "action": failure.action.value,
                    "code": failure.code,
                    "reason": failure.reason,
                }
                for failure in result.errors
            ],
        }

    outcome = _run(action)
    if as_json:
        _echo_json(outcome)
    elif outcome["dry_run"]:
        typer.echo(f"gained: {', '.join(outcome['gained']) or '-'}")
        typer.echo(f"lost:   {', '.join(outcome['lost']) or '-'}")
        for warning in outcome["warnings"]:
            typer.echo(f"warning: {warning}")
    else:
        typer.echo(f"applied: {outcome['applied_count']}")
        for failure in outcome["errors"]:
            typer.echo(f"failed {failure['action']} {failure['role_id']}: {failure['reason']}")

    if not outcome["dry_run"] and outcome["errors"]:
        raise typer.Exit(code=2)

@app.command(name="audit", help="Show the audit trail, newest first.")
def audit(
    user_id: str | None = typer.Option(None, "--user", help="Only entries targeting this user."),
    role: str | None = typer.Option(None, "--role", help="Only entries about this role slug."),
    actor_id: str | None = typer.Option(None, "--actor-id", help="Only entries by this actor."),
    limit: int = typer.Option(50, "--limit", min=1, help="Maximum entries to show."),
    as_json: bool = JsonOption,
) -> None:
    async def action(engine: RbacEngine, session: AsyncSession) -> list[dict[str, Any]]:
        role_ids = await _role_ids_for(engine, session, [role]) if role else [None]
        entries = await engine.audit(session).list_audit_entries(
            target_type=AuditTargetType.USER if user_id else None,
            target_id=user_id,
            role_id=role_ids[0],
            actor_id=actor_id,
            limit=limit,
        )
        return [AuditEntryOut.model_validate(entry).serializable_dict() for entry in entries]

    entries = _run(action)
    if as_json:
        _echo_json(entries)
        return
    if not entries:
        typer.echo("No audit entries.")
    for entry in entries:
        typer.echo(
            f"{entry['occurred_at']} {entry['action']:<7} {entry['target_type']}:{entry['target_id']}"
            f" actor={entry.get('actor_id', '-')}"
        )



if __name__ == "__main__":
    app()
