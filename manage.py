import asyncio
import re
from pathlib import Path
import subprocess
from typing import Annotated, Callable

from pydantic import validate_email
from rich import print
import typer

from app.core.config import settings

app = typer.Typer()

SPECIAL_CHARACTERS = r"[!@#$%^&*(),.?\":{}|<>]"


def password_problems(password: str) -> list[str]:
    """Return the unmet admin password rules (empty when the password is acceptable)."""
    problems = []
    if len(password) < 8:
        problems.append("at least 8 characters")
    if not re.search(r"[A-Z]", password):
        problems.append("one uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("one lowercase letter")
    if not re.search(r"\d", password):
        problems.append("one number")
    if not re.search(SPECIAL_CHARACTERS, password):
        problems.append("one special character")
    return problems


def email_validator(email: str) -> str:
    _, email = validate_email(email)
    return email.lower()


def password_validator(password: str) -> str:
    if problems := password_problems(password):
        raise typer.BadParameter(f"Password needs: {', '.join(problems)}")
    return password


async def create_admin_task(
    name: str,
    email: str,
    password: str,
    phone: str | None = None,
    confirm: Callable[[str], bool] = typer.confirm,
) -> str:
    """
    Create an admin account, or upgrade an existing user to admin.

    Returns:
        str: One of "created", "upgraded", "exists" or "skipped".
    """
    from app.core.db import AsyncSessionLocal
    from app.core.db.crud import user_db
    from app.core.enums import UserRole
    from app.core.utils import hash_password, normalize_phone

    async with AsyncSessionLocal() as session:
        async with session.begin():
            if existing_user := await user_db.get_by_email(session, email):
                if existing_user.role == UserRole.ADMIN:
                    print(f"[yellow]Admin already exists:[/yellow] {email}")
                    return "exists"
                if not confirm(
                    f"User {existing_user.name} exists but is not an admin. Upgrade to admin?"
                ):
                    print("[cyan]Leaving the existing user unchanged[/cyan]")
                    return "skipped"
                await user_db.update(
                    session,
                    existing_user.id,
                    {"role": UserRole.ADMIN, "password_hash": hash_password(password)},
                    commit_self=False,
                )
                print(f"[green]User upgraded to admin:[/green] {email}")
                return "upgraded"

            user = await user_db.create(
                session,
                {
                    "name": name,
                    "email": email,
                    "phone": normalize_phone(phone) if phone else None,
                    "password_hash": hash_password(password),
                    "role": UserRole.ADMIN,
                },
                commit_self=False,
            )
            print(f"[green]Admin created:[/green] {user.email}")
            return "created"


@app.command()
def createadmin(
    name: Annotated[str, typer.Option(prompt=True)],
    email: Annotated[str, typer.Option(prompt=True, callback=email_validator)],
    password: Annotated[
        str,
        typer.Option(
            prompt=True,
            hide_input=True,
            confirmation_prompt=True,
            callback=password_validator,
            help="8+ chars with uppercase, lowercase, number and special character",
        ),
    ],
    phone: Annotated[str | None, typer.Option()] = None,
):
    """
    Creates an admin account with the given name, email and password.

    An existing non-admin user with the same email is upgraded after confirmation.
    """
    asyncio.run(create_admin_task(name.strip(), email, password, phone))


def _run(label: str, command: str) -> None:
    try:
        print(f"Running {label}: {command}")
        subprocess.run(command, shell=True, check=True)
    except subprocess.CalledProcessError as e:
        print(f"[red]Error:[/red] {e}")
        raise


@app.command()
def makemigrations(comment: Annotated[str, typer.Argument()] = "auto"):
    """
    Creates a new Alembic migration revision with an autogenerated migration script.

    Args:
        comment (str, optional): The message to use for the migration revision. Defaults to "auto".
    """
    _run("Alembic migrations", f'alembic revision --autogenerate -m "{comment}"')
    print("[green]Make migrations complete[/green]")


@app.command()
def showmigrations():
    """Shows the Alembic migration history."""
    _run("Alembic history", "alembic history")
    print("[green]Show migrations complete[/green]")


@app.command()
def migrate():
    """Runs the Alembic database migration to upgrade the schema to the latest version."""
    _run("Alembic upgrade", "alembic upgrade head")
    print("[green]Migration complete[/green]")


@app.command()
def runserver():
    server_command = (
        "uvicorn app.main:app --host 127.0.0.1 --port 8000 --reload"
        if settings.DEBUG
        else "uvicorn app.main:app --host 0.0.0.0 --port 8000"
    )
    _run("FastAPI server", server_command)


@app.command()
def runbroker():
    """
    Run a local RabbitMQ broker in Docker
    """
    _run(
        "RabbitMQ broker",
        "docker run -it --rm --name rabbitmq -p 5672:5672 -p 15672:15672 rabbitmq:4-management",
    )


@app.command()
def runconsumers():
    """Run the email queue consumers as a standalone process."""
    _run("message consumers", "python -m app.infrastructure.messaging.main")


@app.command()
def runscheduler():
    """Run the housekeeping scheduler as a standalone process."""
    _run("scheduler", "python -m app.infrastructure.scheduler.main")


@app.command()
def generateopenapi(
    output: Annotated[Path, typer.Option(help="Where to write the schema")] = Path(
        "openapi.json"
    ),
):
    """
    Generates the OpenAPI schema for the FastAPI application and saves it to a JSON file.
    """
    from app.core.utils import generate_openapi_json, write_to_file_async
    from app.main import app as fastapi_app

    asyncio.run(write_to_file_async(str(output), generate_openapi_json(fastapi_app)))
    print(f"[green]OpenAPI schema generated at {output.name}[/green]")


@app.callback()
def main(ctx: typer.Context):
    print(f"Executing the command: {ctx.invoked_subcommand}")


if __name__ == "__main__":
    app()
