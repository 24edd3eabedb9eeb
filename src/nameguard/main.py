"""Main entry point for NameGuard."""

import asyncio

from nameguard.config import get_settings
from nameguard.discord.bot import NameGuardBot
from nameguard.logging import get_logger, setup_logging
from nameguard.spam_filter.config_store import PostgresConfigStore


async def main() -> None:
    """Main application entry point."""
    setup_logging()
    log = get_logger("nameguard.main")

    settings = get_settings()
    log.info(
        "starting_nameguard",
        environment=settings.environment,
        spam_filter_guild_ids=settings.spam_filter_guild_ids,
    )

    config_store = PostgresConfigStore(dsn=settings.postgres_dsn)
    await config_store.initialize()
    log.info("config_store_initialized")

    bot = NameGuardBot(config_store=config_store)
    log.info("bot_created")

    try:
        await bot.start(settings.discord_token.get_secret_value())
    except KeyboardInterrupt:
        log.info("shutdown_requested")
    finally:
        await bot.close()
        await config_store.close()
        log.info("nameguard_stopped")


def run() -> None:
    """Run the application."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
