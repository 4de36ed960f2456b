"""Main entry point: start the core, report stored data and speak words."""
import asyncio
import logging
import sys
from typing import List

from spellfun.app import SpellFun
from spellfun.config import ensure_directories, settings
from spellfun.logging_config import setup_logging
from spellfun.monitoring import start_monitoring

logger = logging.getLogger("spellfun")


async def main(words: List[str]) -> None:
    """Start the app, list users and speak any words given."""
    app = SpellFun(settings)
    await app.start()
    try:
        users = await app.persistence.list_users()
        logger.info("%d users stored", len(users))
        for user in users:
            lessons = await app.persistence.list_lessons_for_user(user.id)
            logger.info("User %s has %d lessons", user.name, len(lessons))

        if words:
            await app.voice.ensure_ready(
                settings.voice.voice_id,
                lambda p: logger.info(
                    "Downloading %s: %s",
                    p.url,
                    "..." if p.percent is None else f"{p.percent:.0f}%",
                ),
            )
        for word in words:
            await app.voice.speak(word, settings.voice.voice_id)
    finally:
        await app.stop()


if __name__ == "__main__":
    ensure_directories()

    setup_logging("Starting SpellFun core ...")

    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)

    try:
        asyncio.run(main(sys.argv[1:]))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
