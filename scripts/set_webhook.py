#!/usr/bin/env python3
"""
Register the bot webhook with Telegram.
Usage: python scripts/set_webhook.py https://example.com/telegram-webhook
"""

import sys

from app.config import settings
from app.services.telegram_service import TelegramService


def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/set_webhook.py <public_webhook_url>")
        sys.exit(1)

    if not settings.telegram_bot_token:
        print("Missing TELEGRAM_BOT_TOKEN env var", file=sys.stderr)
        sys.exit(1)

    telegram = TelegramService(settings.telegram_bot_token, timeout_seconds=settings.http_timeout_seconds)
    result = telegram.set_webhook(sys.argv[1], secret_token=settings.telegram_webhook_secret)
    if not result.ok:
        print(f"setWebhook failed: {result.error}", file=sys.stderr)
        sys.exit(1)

    print(f"Webhook set to {sys.argv[1]}")


if __name__ == "__main__":
    main()
