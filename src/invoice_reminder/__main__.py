"""Invoice reminder service entrypoint.

Runs the scheduler for every persisted job schedule until interrupted, or
dispatches once for a single user:

    invoice-reminder
    invoice-reminder send <user_id>
"""

import argparse
import asyncio
import contextlib
import logging
import signal
from uuid import UUID

from dotenv import load_dotenv

from .barcode import BarcodeReaderService
from .config import Config
from .dispatch import SendMessageService
from .ingestion import GmailAttachmentFetcher
from .messaging import TelegramBotService, TelegramMessageSender
from .scheduling import CronJob, JobSchedulerService
from .storage import DatabaseClient

logger = logging.getLogger(__name__)


def build_send_message_service(config: Config, db: DatabaseClient) -> SendMessageService:
    """Wire the dispatch service to its production collaborators."""
    return SendMessageService(
        barcode_reader=BarcodeReaderService(source_encoding=config.pdf_source_encoding),
        attachment_fetcher=GmailAttachmentFetcher(
            client_id=config.google_oauth2_client_id,
            client_secret=config.google_oauth2_client_secret,
            encryption_key=config.token_encryption_key,
            token_store=db,
        ),
        chat_sender=TelegramMessageSender(config.telegram_bot_token),
        invoice_store=db,
        user_store=db,
    )


async def serve(config: Config) -> None:
    """Load all schedules, start the scheduler and the chat bot, and wait for a stop signal."""
    db = DatabaseClient(config.database_url)
    scheduler = JobSchedulerService(
        cron_job=CronJob(build_send_message_service(config, db)),
        timezone=config.scheduler_timezone,
    )
    bot = TelegramBotService(
        config.telegram_bot_token,
        user_store=db,
        chat_sender=TelegramMessageSender(config.telegram_bot_token),
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("=" * 80)
    logger.info("SCHEDULER STARTED")
    logger.info("=" * 80)

    bot_task = None
    try:
        schedules = await db.get_all_job_schedules()
        logger.info(f"Found {len(schedules)} job schedules")

        await scheduler.start(schedules)
        bot_task = asyncio.create_task(bot.run())
        await stop.wait()
    finally:
        if bot_task is not None:
            bot_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await bot_task
        await scheduler.stop()
        await db.close()
        logger.info("SCHEDULER STOPPED")


async def send_once(config: Config, user_id: UUID) -> str:
    """Run a single dispatch for one user."""
    db = DatabaseClient(config.database_url)
    try:
        return await build_send_message_service(config, db).send_message(user_id)
    finally:
        await db.close()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(prog="invoice-reminder", description=__doc__.splitlines()[0])
    subcommands = parser.add_subparsers(dest="command")
    send = subcommands.add_parser("send", help="dispatch invoice notifications for one user now")
    send.add_argument("user_id", type=UUID)
    args = parser.parse_args()

    load_dotenv()
    config = Config.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "send":
        print(asyncio.run(send_once(config, args.user_id)))
    else:
        asyncio.run(serve(config))


if __name__ == "__main__":
    main()
