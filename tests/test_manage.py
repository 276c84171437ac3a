"""
Test suite for manage.py CLI commands.

Run all tests:
    pytest tests/test_manage.py -v

Run with coverage:
    pytest tests/test_manage.py --cov=manage --cov-report=term-missing -v
"""

from unittest.mock import patch

import pytest
import typer
from sqlalchemy import select
from typer.testing import CliRunner

from app.core.db import AsyncSessionLocal
from app.core.db.models import User
from app.core.enums import UserRole
from app.core.utils import verify_password
from manage import app, create_admin_task, email_validator, password_problems, password_validator

runner = CliRunner()


async def _stored_user(email: str) -> User:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one()


class TestPasswordRules:

    def test_strong_password(self):
        assert password_problems("Str0ng!Pass") == []

    @pytest.mark.parametrize(
        "password, problem",
        [
            ("Sh0r!", "at least 8 characters"),
            ("lower0nly!", "one uppercase letter"),
            ("UPPER0NLY!", "one lowercase letter"),
            ("NoDigits!!", "one number"),
            ("NoSpecial12", "one special character"),
        ],
    )
    def test_each_rule_reported(self, password, problem):
        assert problem in password_problems(password)

    def test_validator_rejects(self):
        with pytest.raises(typer.BadParameter):
            password_validator("weak")

    def test_email_is_lowercased(self):
        assert email_validator("Admin@RuraMed.Example.com") == "admin@ruramed.example.com"


class TestCreateAdminTask:
    """Test suite for create_admin_task."""

    @pytest.mark.asyncio
    async def test_creates_admin(self, db_engine):
        result = await create_admin_task(
            "Ops", "ops@example.com", "Str0ng!Pass", phone="+91 98765 43210"
        )

        assert result == "created"
        user = await _stored_user("ops@example.com")
        assert user.role == UserRole.ADMIN
        assert user.phone == "9876543210"
        assert verify_password("Str0ng!Pass", user.password_hash)

    @pytest.mark.asyncio
    async def test_existing_admin_untouched(self, db_engine, make_user):
        await make_user(email="ops@example.com", role=UserRole.ADMIN)

        result = await create_admin_task("Ops", "ops@example.com", "Str0ng!Pass")

        assert result == "exists"

    @pytest.mark.asyncio
    async def test_upgrade_confirmed(self, db_engine, make_user):
        """Test a confirmed upgrade promotes the user and replaces the password."""
        await make_user(email="ops@example.com")

        result = await create_admin_task(
            "Ops", "ops@example.com", "N3w!Password", confirm=lambda _: True
        )

        assert result == "upgraded"
        user = await _stored_user("ops@example.com")
        assert user.role == UserRole.ADMIN
        assert verify_password("N3w!Password", user.password_hash)

    @pytest.mark.asyncio
    async def test_upgrade_declined(self, db_engine, make_user):
        await make_user(email="ops@example.com")

        result = await create_admin_task(
            "Ops", "ops@example.com", "N3w!Password", confirm=lambda _: False
        )

        assert result == "skipped"
        assert (await _stored_user("ops@example.com")).role == UserRole.USER


class TestCommands:

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("createadmin", "migrate", "runscheduler", "runconsumers"):
            assert command in result.stdout

    def test_createadmin_rejects_weak_password(self):
        with patch("manage.create_admin_task") as mock_task:
            result = runner.invoke(
                app,
                [
                    "createadmin",
                    "--name",
                    "Ops",
                    "--email",
                    "ops@example.com",
                    "--password",
                    "weak",
                ],
            )

        assert result.exit_code != 0
        mock_task.assert_not_called()

    def test_migrate_runs_alembic(self):
        with patch("manage.subprocess.run") as mock_run:
            result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 0
        mock_run.assert_called_once_with("alembic upgrade head", shell=True, check=True)
