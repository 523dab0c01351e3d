#!/usr/bin/env python3
"""Command line entry point for the staking bot"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from stakebot.config import Settings
from stakebot.core.recovery import BotError
from stakebot.logging_config import setup_logging
from stakebot.providers import EnvSecretProvider, SecretUnavailableError, load_ledger_factory
from stakebot.runtime import StakingBot
from stakebot.services.events import EventBus, Severity, WebhookEventSink


def print_config(settings: Settings) -> None:
    """Pretty print the effective configuration"""
    print("\n⚙️  Effective configuration")
    print("=" * 50)
    for key, value in settings.summary().items():
        print(f"{key:<32} {value}")
    print(f"\nSigning key is read from ${settings.signing_key_env}")


async def cli_run(settings: Settings, once: bool = False, status_api: bool = False) -> int:
    """Run the bot until a signal or a fatal error stops it"""

    if not settings.ledger_factory:
        print("❌ No ledger client configured. Set STAKEBOT_LEDGER_FACTORY to 'package.module:callable'.", file=sys.stderr)
        return 1

    try:
        factory = load_ledger_factory(settings.ledger_factory)
        signing_key = EnvSecretProvider(settings.signing_key_env).obtain_signing_key()
    except (ValueError, SecretUnavailableError) as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    events = EventBus()
    webhook: Optional[WebhookEventSink] = None
    if settings.alert_webhook_url:
        webhook = WebhookEventSink(settings.alert_webhook_url, Severity(settings.alert_min_severity))
        events.subscribe(webhook)

    bot = StakingBot(settings, factory, events=events)
    api_task: Optional[asyncio.Task] = None
    try:
        if once:
            result = await bot.run_once(signing_key)
            print(json.dumps(result.to_dict(), indent=2))
            return 0

        bot.install_signal_handlers()
        if status_api or settings.status_api_enabled:
            from stakebot.main import serve

            api_task = asyncio.create_task(
                serve(bot, settings.status_host, settings.status_port, settings.log_level),
                name="stakebot-status-api",
            )

        await bot.start(signing_key)
        await bot.wait_closed()
        return 0
    except BotError as exc:
        print(f"❌ {exc.kind.value}: {exc.message}", file=sys.stderr)
        return 1
    finally:
        if api_task is not None:
            api_task.cancel()
            await asyncio.gather(api_task, return_exceptions=True)
        await bot.close()
        if webhook is not None:
            await webhook.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Claim, approve and stake rewards on a schedule")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the bot (default)")
    run_parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    run_parser.add_argument("--status-api", action="store_true", help="Serve the read-only status API")

    subparsers.add_parser("config", help="Print the effective configuration")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = (args.command or "run").lower()

    settings = Settings()
    setup_logging(settings.log_level)

    if command == "config":
        print_config(settings)
        return 0

    if command == "run":
        return asyncio.run(
            cli_run(
                settings,
                once=getattr(args, "once", False),
                status_api=getattr(args, "status_api", False),
            )
        )

    print(f"❌ Unknown command: {command}")
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
