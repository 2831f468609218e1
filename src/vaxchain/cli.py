"""Command-line interface for the VaxChain ledger."""
from __future__ import annotations

import asyncio
import json
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import click

from .core.async_db import build_engine, build_sessionmaker, init_models
from .core.config import Settings, get_settings
from .core.errors import ResumeError, StoreError
from .core.logging import configure_logging
from .ledger.producer import ChainProducer
from .ledger.sensor import SafeRange
from .ledger.store import LedgerStore
from .services.chain_service import ChainService


@asynccontextmanager
async def _open_store(settings: Settings) -> AsyncIterator[LedgerStore]:
    engine = build_engine(settings.DATABASE_URL)
    try:
        await init_models(engine)
        yield LedgerStore(build_sessionmaker(engine))
    finally:
        await engine.dispose()


@click.group()
@click.option("--database-url", envvar="VAXCHAIN_DATABASE_URL", help="Override the database URL.")
@click.pass_context
def main(ctx: click.Context, database_url: Optional[str]) -> None:
    """VaxChain ledger utilities."""
    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"DATABASE_URL": database_url})
    # Logs go to stderr so command output stays machine-readable
    configure_logging(settings, stream=sys.stderr)
    ctx.obj = settings


@main.command()
@click.option("--host", default=None, help="Bind address (default: VAXCHAIN_HOST).")
@click.option("--port", default=None, type=int, help="Bind port (default: VAXCHAIN_PORT).")
@click.pass_obj
def serve(settings: Settings, host: Optional[str], port: Optional[int]) -> None:
    """Run the read API together with the chain producer."""
    import uvicorn

    from .main import create_app

    uvicorn.run(
        create_app(settings),
        host=host or settings.HOST,
        port=port or settings.PORT,
        log_config=None,
    )


@main.command()
@click.option("--lineage", default=None, help="Batch number to extend (default: VAXCHAIN_LINEAGE_ID).")
@click.option("--count", default=None, type=click.IntRange(min=0), help="Stop after this many iterations.")
@click.option("--interval", default=None, type=float, help="Seconds between readings.")
@click.pass_obj
def produce(settings: Settings, lineage: Optional[str], count: Optional[int], interval: Optional[float]) -> None:
    """Run the chain producer without the API."""

    async def _run() -> None:
        async with _open_store(settings) as store:
            producer = ChainProducer.from_settings(store, settings, lineage_id=lineage)
            if interval is not None:
                producer.interval_seconds = interval
            await producer.run(max_iterations=count)

    try:
        asyncio.run(_run())
    except ResumeError as exc:
        raise click.ClickException(str(exc)) from exc
    except KeyboardInterrupt:
        click.echo("Producer interrupted.", err=True)


@main.command()
@click.argument("lineage")
@click.option("--check-payload", is_flag=True, help="Also recompute payload hashes and alert flags.")
@click.pass_obj
def verify(settings: Settings, lineage: str, check_payload: bool) -> None:
    """Verify the hash chain of LINEAGE; exits 1 when it is broken."""

    async def _run():
        async with _open_store(settings) as store:
            service = ChainService(store, SafeRange.from_settings(settings))
            return await service.verify_lineage(lineage, check_payload=check_payload)

    try:
        result = asyncio.run(_run())
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(json.dumps({"batch_no": lineage, **result.to_dict()}, indent=2))
    if not result.ok:
        raise SystemExit(1)


@main.command()
@click.argument("lineage")
@click.pass_obj
def prune(settings: Settings, lineage: str) -> None:
    """Remove duplicate blocks of LINEAGE, keeping the earliest of each index."""

    async def _run() -> int:
        async with _open_store(settings) as store:
            return await store.prune_duplicates(lineage)

    try:
        removed = asyncio.run(_run())
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Removed {removed} duplicate block(s) from {lineage}")


if __name__ == "__main__":  # pragma: no cover
    main()
