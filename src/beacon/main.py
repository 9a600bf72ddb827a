"""Beacon entry point - environment, telemetry, worker and status server."""

import asyncio
import signal
import sys

import httpx

from beacon.config import ConfigError, Settings, load_settings
from beacon.directory import SupabaseDirectory
from beacon.env import init_env
from beacon.otel import get_logger, init_otel, span
from beacon.processors import WebhookContentProcessor, WebhookTelegramProcessor
from beacon.server import StatusServer, create_app
from beacon.worker import Worker

log = get_logger()


def log_banner(settings: Settings):
    log.info("Starting Beacon Worker Process...")
    log.info(f" - Scheduled Content Job Interval: {settings.job_interval.total_seconds():.0f}s")
    log.info(f" - Content Refresh Window: {settings.job_refresh.total_seconds() / 3600:g} hours")
    log.info(f" - Immediate Content Check Interval: {settings.instant_check_interval.total_seconds():.0f}s")
    log.info(f" - Telegram Job Interval: {settings.telegram_job_interval.total_seconds():.0f}s")
    log.info(f" - Telegram Send Cooldown: {settings.telegram_send_interval.total_seconds() / 3600:g} hours")
    log.info(f" - Midnight Refresh Timezone: {settings.refresh_timezone}")


async def run(settings: Settings):
    """Run until SIGTERM or SIGINT, then shut down."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def on_signal(sig: signal.Signals):
        log.info(f"[Process] {sig.name} signal received. Shutting down gracefully.")
        stop.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, on_signal, sig)

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        worker = Worker(
            settings,
            directory=SupabaseDirectory(settings.supabase_url, client, key_var=settings.supabase_key_var),
            content=WebhookContentProcessor(settings.content_webhook_url, client),
            telegram=WebhookTelegramProcessor(settings.telegram_webhook_url, client, settings.telegram_send_interval),
        )
        server = StatusServer(create_app(worker.state), settings.host, settings.port)

        with span("beacon.startup", port=settings.port, timezone=settings.refresh_timezone):
            log_banner(settings)
            await server.start()
            worker.start()

        await stop.wait()

        with span("beacon.shutdown"):
            server.close()
            worker.stop()
            await asyncio.sleep(settings.shutdown_grace_seconds)
            await server.wait_closed()
            worker.close()


def main():
    init_env()
    init_otel()

    try:
        settings = load_settings()
    except ConfigError as e:
        log.error(f"Invalid configuration: {e}")
        sys.exit(1)

    try:
        asyncio.run(run(settings))
    except (RuntimeError, TimeoutError) as e:
        log.error(f"[Process] Fatal: {e}")
        sys.exit(1)
    log.info("[Process] Beacon stopped")


if __name__ == "__main__":
    main()
