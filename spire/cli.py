"""Spire operator CLI (spirectl)."""

import asyncio
from typing import List, Optional

import typer

app = typer.Typer(name="spirectl", help="Spire control panel CLI")
db_app = typer.Typer(help="Database management commands")
settings_app = typer.Typer(help="Panel settings commands")
roles_app = typer.Typer(help="Role management commands")
servers_app = typer.Typer(help="Game server commands")
app.add_typer(db_app, name="db")
app.add_typer(settings_app, name="settings")
app.add_typer(roles_app, name="roles")
app.add_typer(servers_app, name="servers")


@db_app.command("create")
def db_create():
    """Create the MySQL database if needed, then all tables."""
    from sqlalchemy.engine import make_url
    from spire.core.config import settings
    from spire.db.session import init_db

    url = make_url(settings.DATABASE_URL)
    if url.get_backend_name() == "mysql":
        import pymysql

        conn = pymysql.connect(
            host=url.host or "localhost",
            port=url.port or 3306,
            user=url.username,
            password=url.password or "",
        )
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
                "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
            )
            conn.commit()
            typer.echo(f"Database '{url.database}' created (or already exists)")
        finally:
            conn.close()

    init_db()
    typer.echo("Tables created")


@db_app.command("seed")
def db_seed():
    """Upsert the default roles."""
    from spire.db.session import SessionLocal
    from spire.db.seeds.seed_roles import seed_roles

    db = SessionLocal()
    try:
        roles = seed_roles(db)
    finally:
        db.close()
    typer.echo(f"Seeded {len(roles)} roles")


@settings_app.command("show")
def settings_show():
    """Print the settings record."""
    from spire.db.session import SessionLocal
    from spire.services.settings_service import settings_service

    db = SessionLocal()
    try:
        record = settings_service.get_settings(db)
        typer.echo(f"onboarding_complete: {bool(record.onboarding_complete)}")
        typer.echo(f"api_key: {'set' if record.api_key else 'not set'}")
    finally:
        db.close()


@settings_app.command("rotate-key")
def settings_rotate_key():
    """Generate a new panel API key and print it once."""
    from spire.db.session import SessionLocal
    from spire.services.settings_service import settings_service

    db = SessionLocal()
    try:
        key = settings_service.rotate_api_key(db)
    finally:
        db.close()
    typer.echo(key)


@roles_app.command("list")
def roles_list():
    """List all roles with their order and permissions."""
    from spire.db.session import SessionLocal
    from spire.services.role_service import role_service

    db = SessionLocal()
    try:
        for role in role_service.get_roles(db):
            inherit = " (inherits children)" if role.inherit_children else ""
            typer.echo(f"  [{role.order}] {role.name}{inherit}: {', '.join(role.permissions)}")
    finally:
        db.close()


@roles_app.command("set")
def roles_set(
    name: str = typer.Argument(..., help="Role name"),
    order: int = typer.Option(0, help="Rank; higher outranks lower"),
    permission: List[str] = typer.Option(..., "--permission", "-p", help="Permission token, repeatable"),
    inherit_children: Optional[bool] = typer.Option(
        None, "--inherit-children/--no-inherit-children", help="Inherit lower-ranked roles; unchanged when omitted"
    ),
):
    """Create or update a role."""
    from spire.core.exceptions import ActionsError
    from spire.db.session import SessionLocal
    from spire.services.role_service import role_service

    db = SessionLocal()
    try:
        role = role_service.create_role(db, name, order, permission, inherit_children)
    except ActionsError as e:
        typer.echo(f"{e.message}: {e.details}", err=True)
        raise typer.Exit(code=1)
    finally:
        db.close()
    typer.echo(f"Role '{role.name}' saved")


@servers_app.command("logs")
def servers_logs(
    server_id: str = typer.Argument(..., help="Server (container) ID"),
    follow: bool = typer.Option(True, help="Keep streaming live lines"),
):
    """Print a server's log history, then follow live lines."""
    from spire.core.exceptions import NotFound
    from spire.db.session import SessionLocal
    from spire.services.glide_client import glide_client
    from spire.services.log_stream import ServerLogStream
    from spire.services.server_service import server_service

    async def _tail(stream: ServerLogStream) -> None:
        if not follow:
            for line in stream.buffer.extend(await stream.history()):
                typer.echo(line)
            return
        async for line in stream.lines():
            typer.echo(line)

    db = SessionLocal()
    try:
        try:
            server = server_service.get_server(db, server_id)
        except NotFound as e:
            typer.echo(e.message, err=True)
            raise typer.Exit(code=1)
        asyncio.run(_tail(ServerLogStream(server, glide_client)))
    finally:
        db.close()


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the API server."""
    import uvicorn
    uvicorn.run("spire.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
