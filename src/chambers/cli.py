"""
Chambers CLI

Command-line interface for the Chambers voice bridge.
"""

import asyncio
import sys

import click
import structlog

from chambers import __version__
from chambers.config import settings
from chambers.errors import UpstreamConnectionError
from chambers.logging import configure_logging

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# CLI Group
# ══════════════════════════════════════════════════════════════


@click.group()
@click.version_option(version=__version__, prog_name="chambers")
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Chambers - voice companion bridge for judges."""
    configure_logging(
        "DEBUG" if debug else settings.log_level,
        settings.log_format,
        force=True,
    )


# ══════════════════════════════════════════════════════════════
# Server Commands
# ══════════════════════════════════════════════════════════════


@cli.command()
@click.option("--host", default="0.0.0.0", help="Host to bind to")
@click.option("--port", default=3000, help="Port to bind to")
@click.option("--reload/--no-reload", default=False, help="Enable auto-reload")
@click.option("--workers", default=1, help="Number of worker processes")
def serve(host: str, port: int, reload: bool, workers: int) -> None:
    """Start the Chambers API server."""
    import uvicorn

    click.echo(f"Starting Chambers API on {host}:{port}")
    click.echo(f"  Voice WebSocket: ws://{host}:{port}/api/voice")

    uvicorn.run(
        "chambers.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        workers=workers if not reload else 1,
        factory=True,
    )


# ══════════════════════════════════════════════════════════════
# Diagnostics
# ══════════════════════════════════════════════════════════════


@cli.command("check-config")
def check_config() -> None:
    """Show the effective voice bridge configuration."""
    rows = [
        ("Environment", settings.app_env),
        ("JWT secret", "set" if settings.jwt_secret else "MISSING"),
        ("OpenAI key", "set" if settings.openai_api_key else "MISSING"),
        ("Model", settings.realtime_model),
        ("Default voice", settings.realtime_default_voice),
        ("Rate limit", f"{settings.voice_rate_limit_per_second}/s per connection"),
        ("Session timeout", f"{settings.voice_session_timeout_ms} ms"),
        ("Connect timeout", f"{settings.voice_connect_timeout_ms} ms"),
    ]
    for label, value in rows:
        click.echo(f"  {label:16} {value}")

    if not (settings.jwt_secret and settings.openai_api_key):
        sys.exit(1)


class _LoggingSink:
    """Event sink that only logs, for connectivity probes."""

    async def on_audio_delta(self, audio: str, item_id: str) -> None:
        logger.debug("audio.delta", item_id=item_id, audio=audio)

    async def on_audio_done(self, item_id: str) -> None:
        logger.debug("audio.done", item_id=item_id)

    async def on_transcript_delta(self, text: str, item_id: str) -> None:
        logger.debug("transcript.delta", item_id=item_id)

    async def on_transcript_done(self, text: str, item_id: str) -> None:
        logger.debug("transcript.done", item_id=item_id)

    async def on_user_speech_started(self) -> None:
        logger.debug("speech.started")

    async def on_user_speech_stopped(self) -> None:
        logger.debug("speech.stopped")

    async def on_error(self, message: str) -> None:
        logger.error("upstream.error", error=message)

    async def on_close(self) -> None:
        logger.info("upstream.closed")


@cli.command("probe-upstream")
@click.option("--voice", default=None, help="Voice to configure")
def probe_upstream(voice: str | None) -> None:
    """Open and close one OpenAI Realtime session."""
    from chambers.realtime.bridge import openai_upstream_factory

    factory = openai_upstream_factory(settings)
    client = factory(voice or settings.realtime_default_voice, _LoggingSink())

    async def probe() -> None:
        try:
            await client.connect()
        finally:
            await client.close()

    try:
        asyncio.run(probe())
    except UpstreamConnectionError as e:
        click.echo(f"✗ Upstream connection failed: {e}", err=True)
        sys.exit(1)

    click.echo("✓ Upstream connection OK")


# ══════════════════════════════════════════════════════════════
# Entry Point
# ══════════════════════════════════════════════════════════════


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
