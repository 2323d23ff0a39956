"""laundry-auth CLI tool."""

import asyncio
import logging
import sys

import click

from laundry_auth.auth.models import Role
from laundry_auth.auth.service import AuthService, ClientInfo
from laundry_auth.core.client import S3ClientManager
from laundry_auth.core.exceptions import LaundryAuthError
from laundry_auth.core.settings import LaundryAuthSettings, get_settings

CLI_CLIENT = ClientInfo(fingerprint="cli", user_agent="laundry-auth-cli")


def _load_settings(bucket: str | None = None, endpoint: str | None = None) -> LaundryAuthSettings:
    settings = get_settings()
    overrides = {}
    if bucket:
        overrides["aws_bucket_name"] = bucket
    if endpoint:
        overrides["aws_url"] = endpoint
    if overrides:
        settings = settings.model_copy(update=overrides)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return settings


def _run(coro) -> None:
    """Run a command coroutine, reporting laundry-auth errors without a traceback."""
    try:
        asyncio.run(coro)
    except LaundryAuthError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)


@click.group()
def cli():
    """laundry-auth - Authentication service for the laundry POS."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", default=8000, type=int, help="Port to listen on")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
def serve(host, port, reload):
    """Run the auth API with uvicorn."""
    import uvicorn

    settings = _load_settings()
    uvicorn.run(
        "laundry_auth.fastapi.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command("create-admin")
@click.option("--username", envvar="ADMIN_USERNAME", required=True, help="Login name")
@click.option(
    "--password",
    envvar="ADMIN_PASSWORD",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Password (prompted when not given)",
)
@click.option("--email", envvar="ADMIN_EMAIL", default=None, help="Optional email address")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.ADMIN.value,
    show_default=True,
)
@click.option("--bucket", help="S3 bucket name (defaults to AWS_BUCKET_NAME)")
@click.option("--endpoint", help="S3 endpoint URL (for LocalStack/MinIO)")
def create_admin(username, password, email, role, bucket, endpoint):
    """Create an account directly in the account store."""

    async def _create():
        settings = _load_settings(bucket, endpoint)
        service = AuthService(settings)
        manager = S3ClientManager(settings)

        async with manager.get_async_client() as s3_client:
            user = await service.create_account(
                s3_client, username, password, email, Role(role), CLI_CLIENT
            )
        click.echo(f"✅ Created {user.role.value} account '{user.username}' ({user.id})")

    _run(_create())


@cli.command("setup-status")
@click.option("--bucket", help="S3 bucket name (defaults to AWS_BUCKET_NAME)")
@click.option("--endpoint", help="S3 endpoint URL (for LocalStack/MinIO)")
def setup_status(bucket, endpoint):
    """Show whether first-run setup is still required."""

    async def _status():
        settings = _load_settings(bucket, endpoint)
        service = AuthService(settings)
        manager = S3ClientManager(settings)

        async with manager.get_async_client() as s3_client:
            status = await service.setup_status(s3_client)

        if status.setup_required:
            click.echo("Setup required: no active accounts")
        else:
            click.echo(f"Setup complete: {status.user_count} active account(s)")

    _run(_status())


@cli.command("init-bucket")
@click.option("--bucket", help="S3 bucket name (defaults to AWS_BUCKET_NAME)")
@click.option("--endpoint", help="S3 endpoint URL (for LocalStack/MinIO)")
def init_bucket(bucket, endpoint):
    """Create the account bucket if it does not exist."""

    async def _init():
        settings = _load_settings(bucket, endpoint)
        manager = S3ClientManager(settings)

        async with manager.get_async_client() as s3_client:
            created = await manager.ensure_bucket_exists(s3_client)

        if created:
            click.echo(f"✅ Created bucket {settings.aws_bucket_name}")
        else:
            click.echo(f"Bucket {settings.aws_bucket_name} already exists")

    _run(_init())


@cli.command()
def version():
    """Show laundry-auth version."""
    from laundry_auth import __version__

    click.echo(f"laundry-auth version: {__version__}")


if __name__ == "__main__":
    cli()
