from __future__ import annotations

import asyncio
import logging
import os

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage
from dotenv import load_dotenv

from automation import AutomationRunner, AutomationSettings

from .handlers import router

logger = logging.getLogger(__name__)


def load_env() -> None:
    load_dotenv()


async def main() -> None:
    load_env()
    token = os.getenv("BOT_TOKEN")
    if not token:
        raise RuntimeError("BOT_TOKEN environment variable is not set.")

    logging.basicConfig(level=logging.INFO)
    settings = AutomationSettings.from_env()
    runner = AutomationRunner(settings)
    logger.info("Portal automation context: %s", settings.execution_context.value)

    bot = Bot(token=token, default=DefaultBotProperties(parse_mode="HTML"))
    dp = Dispatcher(storage=MemoryStorage())
    dp["runner"] = runner
    dp.include_router(router)

    await dp.start_polling(bot)


if __name__ == "__main__":
    asyncio.run(main())
