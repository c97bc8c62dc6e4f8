"""Command line entry point"""

import click
import uvicorn
import structlog
from warden.config import settings

logger = structlog.get_logger()


@click.group()
def cli():
    """Warden service commands"""


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=settings.PORT, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool):
    """Run the API server"""
    uvicorn.run("warden.main:app", host=host, port=port, reload=reload)


@cli.command("init-db")
def init_db():
    """Create all database tables"""
    from warden.database.database import engine, Base
    from warden.database import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("database_initialized", url=engine.url.render_as_string(hide_password=True))
    click.echo("Database tables created")


@cli.command()
@click.argument("user_email")
def sessions(user_email: str):
    """List active sessions of a user"""
    from warden.database.database import SessionLocal
    from warden.database.models import User
    from warden.services.auth_service import AuthService, normalize_email

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == normalize_email(user_email)).first()
        if not user:
            raise click.ClickException(f"No user with email {user_email}")
        for session in AuthService.list_sessions(db, user.id):
            click.echo(f"{session.id}  {session.created_at}  {session.ip_address or '-'}  {session.user_agent or '-'}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
