"""AuthKit CLI tool (authkit)."""

from urllib.parse import urlsplit

import typer

app = typer.Typer(name="authkit", help="AuthKit CLI")
db_app = typer.Typer(help="Database management commands")
tokens_app = typer.Typer(help="Refresh token maintenance")
app.add_typer(db_app, name="db")
app.add_typer(tokens_app, name="tokens")


def _mysql_params(url: str):
    """Split a mysql+pymysql:// URL into connect kwargs and the database name."""
    parts = urlsplit(url)
    params = {
        "host": parts.hostname or "localhost",
        "port": parts.port or 3306,
        "user": parts.username or "root",
        "password": parts.password or "",
    }
    return params, parts.path.lstrip("/")


@db_app.command("create")
def db_create():
    """Create the MySQL database if it doesn't exist."""
    import pymysql
    from authkit.core.config import settings

    params, db_name = _mysql_params(settings.DATABASE_URL)
    conn = pymysql.connect(**params)
    try:
        cursor = conn.cursor()
        cursor.execute(f"CREATE DATABASE IF NOT EXISTS `{db_name}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci")
        conn.commit()
        typer.echo(f"✅ Database '{db_name}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    from authkit.db.session import init_db

    init_db()
    typer.echo("✅ Tables created")


@db_app.command("seed")
def db_seed():
    """Seed permissions, roles, and the admin user."""
    from authkit.db.session import SessionLocal, init_db
    from authkit.db.seeds.seed_roles import seed_roles
    from authkit.db.seeds.seed_admin import seed_admin

    init_db()
    db = SessionLocal()
    try:
        seed_roles(db)
        seed_admin(db)
    finally:
        db.close()
    typer.echo("✅ All seeds applied")


@db_app.command("reset")
def db_reset():
    """Drop and recreate the database (DANGER)."""
    confirm = typer.confirm("⚠️  This will DROP the entire database. Continue?")
    if not confirm:
        raise typer.Abort()
    import pymysql
    from authkit.core.config import settings

    params, db_name = _mysql_params(settings.DATABASE_URL)
    conn = pymysql.connect(**params)
    try:
        cursor = conn.cursor()
        cursor.execute(f"DROP DATABASE IF EXISTS `{db_name}`")
        cursor.execute(f"CREATE DATABASE `{db_name}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci")
        conn.commit()
        typer.echo(f"✅ Database '{db_name}' reset")
    finally:
        conn.close()


@tokens_app.command("cleanup")
def tokens_cleanup():
    """Delete expired and revoked refresh tokens."""
    from authkit.db.session import SessionLocal
    from authkit.services.token_service import TokenService

    db = SessionLocal()
    try:
        removed = TokenService(db).cleanup_expired()
    finally:
        db.close()
    typer.echo(f"✅ Removed {removed} refresh token(s)")


@app.command("login")
def login(
    username: str = typer.Argument(..., help="Username or email"),
    password: str = typer.Option(..., prompt=True, hide_input=True),
    base_url: str = typer.Option("http://localhost:8000", help="API base URL"),
):
    """Obtain a token pair from a running server."""
    import httpx
    resp = httpx.post(
        f"{base_url}/api/v1/auth/login",
        json={"username": username, "password": password},
        timeout=30,
    )
    data = resp.json()
    if resp.status_code != 200:
        typer.echo(f"❌ {resp.status_code}: {data.get('detail')}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"access_token:  {data['access_token']}")
    typer.echo(f"refresh_token: {data['refresh_token']}")


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the FastAPI server."""
    import uvicorn
    uvicorn.run("authkit.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
