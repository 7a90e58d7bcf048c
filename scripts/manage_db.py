#!/usr/bin/env python3
"""
Database management script for the subsidy admin backend.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from subsidy_admin.core.database import init_database, close_database, DatabaseManager
from subsidy_admin.core.exceptions import SubsidyAdminException
from subsidy_admin.core.logging import setup_logging, get_logger
from subsidy_admin.services.profile_store import profile_store_scope
from subsidy_admin.services.seeding import DEFAULT_SEED_FILE, load_seed_entries, seed_profiles
from subsidy_admin.utils.validation import truncate_address

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="Database management commands")


@app.command()
def init():
    """Initialize database with tables."""
    async def _init():
        setup_logging()
        await init_database()
        await DatabaseManager.create_tables()
        await close_database()
        console.print("✅ Database initialized successfully!")

    asyncio.run(_init())


@app.command()
def reset():
    """Reset database (drop all tables)."""
    confirm = typer.confirm("Are you sure you want to drop all tables?")
    if not confirm:
        console.print("❌ Operation cancelled")
        return

    async def _reset():
        setup_logging()
        await init_database()
        await DatabaseManager.drop_tables()
        await close_database()
        console.print("🗑️ All tables dropped!")

    asyncio.run(_reset())


@app.command()
def health():
    """Check database health."""
    async def _health() -> dict:
        setup_logging()
        await init_database()
        try:
            return await DatabaseManager.health_check()
        finally:
            await close_database()

    result = asyncio.run(_health())
    if result["healthy"]:
        console.print(f"✅ Database is healthy ({result['backend']}, {result['latency_ms']} ms)")
    else:
        console.print(f"❌ Database health check failed: {result.get('error')}")
        sys.exit(1)


@app.command()
def seed(
    seed_file: Optional[Path] = typer.Option(
        None, "--file", "-f", help=f"Seed file (default: {DEFAULT_SEED_FILE})"
    ),
):
    """Seed beneficiary profiles from BENEFICIARIES_DATA or a JSON file."""
    console.print("🌱 Seeding beneficiary profiles...")

    async def _seed() -> int:
        setup_logging()
        entries = load_seed_entries(seed_file=seed_file)
        console.print(f"Found {len(entries)} beneficiaries to seed")

        await init_database()
        try:
            await DatabaseManager.create_tables()
            async with profile_store_scope() as store:
                records = await seed_profiles(store, entries)
        finally:
            await close_database()

        for record in records:
            console.print(f"✓ {record.name} ({record.address})")
        return len(records)

    try:
        count = asyncio.run(_seed())
    except SubsidyAdminException as e:
        console.print(f"❌ {e.message}")
        if e.details:
            console.print(e.details)
        sys.exit(1)

    console.print(f"✅ Seeding completed! Upserted {count} beneficiaries.")


@app.command(name="list")
def list_profiles():
    """List stored beneficiary profiles."""
    async def _list():
        setup_logging()
        await init_database()
        try:
            async with profile_store_scope() as store:
                return await store.list_all()
        finally:
            await close_database()

    records = asyncio.run(_list())

    table = Table(title=f"Beneficiaries ({len(records)})")
    table.add_column("Address", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Phone")
    table.add_column("Responsable")
    table.add_column("Created", style="dim")

    for record in records:
        table.add_row(
            truncate_address(record.address),
            record.name,
            record.phone_number or "-",
            record.responsable or "-",
            record.created_at.strftime("%Y-%m-%d") if record.created_at else "-",
        )

    console.print(table)


if __name__ == "__main__":
    app()
