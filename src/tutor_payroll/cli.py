"""Tutor payroll command line interface.

Provides operational tools for scheduled jobs:
- Schema creation
- Weekly invoice generation
- Pay period locking
- Integrity reports

Usage:
    python -m tutor_payroll.cli init-db
    python -m tutor_payroll.cli generate-week --week-start 2024-06-03
    python -m tutor_payroll.cli lock-week --week-start 2024-06-03 --admin-id X
    python -m tutor_payroll.cli integrity --week-start 2024-06-03
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tutor_payroll.api.schemas import (
    IntegrityReportResponse,
    InvoiceResponse,
    PayPeriodResponse,
)
from tutor_payroll.config import configure_logging, get_settings
from tutor_payroll.database import create_engine_for_url, create_schema, make_session_factory
from tutor_payroll.services import (
    AuditContext,
    IntegrityService,
    PayrollService,
    ServiceResult,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BUSINESS_FAILURE = 1
EXIT_USAGE = 2


def parse_date(s: str) -> date:
    """Parse YYYY-MM-DD date string."""
    return date.fromisoformat(s)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class PayrollCli:
    """Tutor payroll command line interface."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.parser = self._build_parser()
        self._session_factory = session_factory

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m tutor_payroll.cli",
            description="Tutor payroll operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL from the environment)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # init-db command
        subparsers.add_parser(
            "init-db",
            help="Create all tables",
        )

        # generate-week command
        generate = subparsers.add_parser(
            "generate-week",
            help="Generate invoices for a pay period",
        )
        generate.add_argument(
            "--week-start",
            type=parse_date,
            required=True,
            help="Any date inside the week (YYYY-MM-DD)",
        )
        generate.add_argument(
            "--admin-id",
            type=parse_uuid,
            help="Acting administrator (omit for scheduled runs)",
        )

        # lock-week command
        lock = subparsers.add_parser(
            "lock-week",
            help="Lock a pay period, generating invoices first if needed",
        )
        lock.add_argument(
            "--week-start",
            type=parse_date,
            required=True,
            help="Any date inside the week (YYYY-MM-DD)",
        )
        lock.add_argument(
            "--admin-id",
            type=parse_uuid,
            required=True,
            help="Acting administrator",
        )

        # integrity command
        integrity = subparsers.add_parser(
            "integrity",
            help="Print the integrity report for a pay period",
        )
        integrity.add_argument(
            "--week-start",
            type=parse_date,
            required=True,
            help="Any date inside the week (YYYY-MM-DD)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        return asyncio.run(self.run_async(args))

    async def run_async(self, args: list[str] | None = None) -> int:
        """Parse arguments and dispatch to the async command handler."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_USAGE

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "init-db": self._cmd_init_db,
            "generate-week": self._cmd_generate_week,
            "lock-week": self._cmd_lock_week,
            "integrity": self._cmd_integrity,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return await handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return EXIT_USAGE

    def _factory(self, args: argparse.Namespace) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            settings = get_settings()
            url = args.database_url or settings.database_url
            engine = create_engine_for_url(url, echo=settings.sql_echo)
            self._session_factory = make_session_factory(engine)
        return self._session_factory

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create all tables."""
        factory = self._factory(args)
        await create_schema(factory.kw["bind"])
        print("Schema created.")
        return EXIT_OK

    async def _cmd_generate_week(self, args: argparse.Namespace) -> int:
        """Generate invoices for a week."""
        async with self._factory(args)() as session:
            result = await PayrollService(session).generate_payroll_week(
                args.week_start, args.admin_id, AuditContext(user_agent="tutor-payroll-cli")
            )
            return self._emit(
                result,
                lambda invoices: {
                    "invoices": [
                        InvoiceResponse.from_invoice(i).model_dump(mode="json") for i in invoices
                    ]
                },
            )

    async def _cmd_lock_week(self, args: argparse.Namespace) -> int:
        """Lock a week."""
        async with self._factory(args)() as session:
            result = await PayrollService(session).lock_pay_period(
                args.week_start, args.admin_id, AuditContext(user_agent="tutor-payroll-cli")
            )
            return self._emit(
                result,
                lambda period: {
                    "pay_period": PayPeriodResponse.model_validate(period).model_dump(mode="json")
                },
            )

    async def _cmd_integrity(self, args: argparse.Namespace) -> int:
        """Print the integrity report; exit non-zero when issues exist."""
        async with self._factory(args)() as session:
            report = await IntegrityService(session).build_report(args.week_start)
            payload = IntegrityReportResponse.model_validate(report).model_dump(mode="json")
            print(json.dumps(payload, indent=2))
            return EXIT_OK if report.is_clean else EXIT_BUSINESS_FAILURE

    def _emit(
        self,
        result: ServiceResult[Any],
        render: Callable[[Any], dict[str, Any]],
    ) -> int:
        if result.error is not None:
            print(json.dumps({"error": result.error.value}), file=sys.stderr)
            return EXIT_BUSINESS_FAILURE
        print(json.dumps(render(result.value), indent=2))
        return EXIT_OK


def main() -> int:
    """CLI entry point."""
    configure_logging()
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
