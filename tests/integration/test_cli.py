"""Tests for the operational CLI."""

import json
from datetime import date

import pytest
from sqlalchemy import select

from tutor_payroll.cli import EXIT_BUSINESS_FAILURE, EXIT_OK, EXIT_USAGE, PayrollCli
from tutor_payroll.models import Invoice, PayPeriod

WEEK_START = date(2024, 6, 3)


@pytest.fixture
def cli(session_factory) -> PayrollCli:
    return PayrollCli(session_factory=session_factory)


class TestPayrollCli:
    async def test_no_command_prints_help(self, cli, capsys):
        assert await cli.run_async([]) == EXIT_USAGE
        assert "generate-week" in capsys.readouterr().out

    async def test_missing_week_start_is_usage_error(self, cli):
        with pytest.raises(SystemExit) as exc_info:
            await cli.run_async(["generate-week"])
        assert exc_info.value.code == 2

    async def test_init_db_is_idempotent(self, cli, capsys):
        assert await cli.run_async(["init-db"]) == EXIT_OK
        assert "Schema created." in capsys.readouterr().out

    async def test_generate_week(self, cli, session, admin, assignment, make_session, capsys):
        await make_session(assignment, status="APPROVED")
        await session.commit()

        code = await cli.run_async(
            ["generate-week", "--week-start", "2024-06-06", "--admin-id", str(admin.id)]
        )

        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        [invoice] = output["invoices"]
        assert invoice["total_amount"] == "300.00"
        assert invoice["period_start"] == "2024-06-03"

        stored = (await session.execute(select(Invoice))).scalars().all()
        assert len(stored) == 1

    async def test_generate_week_twice_fails(self, cli, session, assignment, make_session, capsys):
        await make_session(assignment, status="APPROVED")
        await session.commit()

        assert await cli.run_async(["generate-week", "--week-start", "2024-06-03"]) == EXIT_OK
        capsys.readouterr()
        code = await cli.run_async(["generate-week", "--week-start", "2024-06-03"])

        assert code == EXIT_BUSINESS_FAILURE
        assert json.loads(capsys.readouterr().err) == {"error": "invoices_already_generated"}

    async def test_lock_week(self, cli, session, admin, assignment, make_session, capsys):
        await make_session(assignment, status="APPROVED")
        await session.commit()

        code = await cli.run_async(
            ["lock-week", "--week-start", "2024-06-03", "--admin-id", str(admin.id)]
        )

        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert output["pay_period"]["status"] == "LOCKED"

        period = (await session.execute(select(PayPeriod))).scalar_one()
        assert period.status == "LOCKED"

    async def test_lock_week_with_pending_sessions(self, cli, session, admin, assignment, make_session, capsys):
        await make_session(assignment)
        await session.commit()

        code = await cli.run_async(
            ["lock-week", "--week-start", "2024-06-03", "--admin-id", str(admin.id)]
        )

        assert code == EXIT_BUSINESS_FAILURE
        assert "pending_sessions" in capsys.readouterr().err

    async def test_integrity_exit_codes(self, cli, session, assignment, make_session, capsys):
        await session.commit()
        assert await cli.run_async(["integrity", "--week-start", "2024-06-03"]) == EXIT_OK
        clean = json.loads(capsys.readouterr().out)
        assert clean["is_clean"] is True

        await make_session(assignment)
        await session.commit()
        assert await cli.run_async(["integrity", "--week-start", "2024-06-03"]) == EXIT_BUSINESS_FAILURE
        report = json.loads(capsys.readouterr().out)
        assert report["pending_submissions"][0]["pending"] == 1
