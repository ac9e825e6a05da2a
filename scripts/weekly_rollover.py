"""Weekly rollover CLI

Ensures every group (or one group) has an up-to-date current week:
creates the new calendar week, sends due reminders, auto-resolves expired
votes. Safe to run concurrently with the API and with itself.

Usage:
    lectio-rollover
    lectio-rollover --group-id grp_3f9a0c1d2b4e5f60

Prints the JSON report; exits 1 when any group failed.
"""

import asyncio
import json
import sys

import click

from config import config, get_logger
from database.db_postgres import Database
from database.id_generation import GROUP_PREFIX, validate_id
from voting.lifecycle import RolloverReport, WeekLifecycleManager

logger = get_logger(__name__).bind(component="rollover_cli")


class GroupIdType(click.ParamType):
    """Validates group id format at parse time (grp_ + 16 hex chars)"""

    name = "group_id"

    def convert(self, value, param, ctx):
        if not validate_id(value, GROUP_PREFIX):
            self.fail(f"'{value}' is not a valid group id (expected {GROUP_PREFIX}_<16 hex chars>)", param, ctx)
        return value


GROUP_ID = GroupIdType()


async def run_rollover(group_id=None, dsn=None) -> RolloverReport:
    db = await Database.create(dsn=dsn)
    try:
        lifecycle = WeekLifecycleManager(db, seed_count=config.SEED_COUNT)
        return await lifecycle.run_weekly_rollover(group_id)
    finally:
        await db.close()


@click.command()
@click.option("--group-id", type=GROUP_ID, default=None, help="Only roll over this group")
@click.option("--dsn", default=None, help="PostgreSQL DSN (defaults to LECTIO_* settings)")
def main(group_id, dsn):
    """Run the weekly rollover against PostgreSQL."""
    report = asyncio.run(run_rollover(group_id, dsn))
    click.echo(json.dumps(report.to_dict(), indent=2))
    if report.failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
