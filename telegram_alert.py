# Filename: telegram_alert.py

import asyncio
import os
import re
import requests
import logging
from typing import Optional
from urllib.parse import quote

logger = logging.getLogger("TelegramNotifier")

_MARKDOWN_SPECIAL = re.compile(r"([_*\[\]~`>#=\\])")
_URL_SPECIAL = re.compile(r"([_*\[\]()~`>#|{}\\])")

EXPLORER_ADDRESS_URL = "https://suivision.xyz/address/"
EXPLORER_TX_URL = "https://suivision.xyz/txblock/"


def escape_markdown(text) -> str:
    if not isinstance(text, str):
        return ""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def escape_url(url) -> str:
    if not isinstance(url, str):
        return ""
    return _URL_SPECIAL.sub(r"\\\1", url)


def _social(value: Optional[str], placeholder: str) -> str:
    if not value or value == placeholder:
        return "N/A"
    return escape_url(value)


class TelegramNotifier:
    def __init__(self, bot_token: str = None, chat_id: str = None, enabled: bool = True, post=None):
        self.bot_token = bot_token or os.getenv("TELEGRAM_BOT_TOKEN", "")
        self.chat_id = chat_id or os.getenv("TELEGRAM_CHAT_ID", "")
        self.enabled = enabled
        self._post = post or requests.post

        if self.enabled and (not self.bot_token or not self.chat_id):
            logger.error("[Telegram] Missing bot token or chat ID!")

    @property
    def active(self) -> bool:
        return bool(self.enabled and self.bot_token and self.chat_id)

    def send_markdown(self, text: str) -> bool:
        """
        Sends a raw Markdown message.
        """
        if not self.active:
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True
        }

        try:
            response = self._post(url, data=payload, timeout=10)
            if response.status_code != 200:
                logger.error(f"[Telegram] Failed: {response.status_code} - {response.text}")
                return False
            logger.info("[Telegram] ✅ Message sent successfully.")
            return True
        except requests.RequestException as e:
            logger.error(f"[Telegram] Request exception: {e}")
            return False

    async def notify(self, text: str) -> bool:
        """send_markdown without blocking the event loop."""
        if not self.active:
            return False
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.send_markdown, text)

    # ------------------------------------------------------------------ formatters

    def format_listing(self, launch, asset_type: Optional[str], tokens_launched: int,
                       deployer_balance: float, creator_pct: float) -> str:
        if asset_type:
            chart = f"https://hop.ag/fun/{quote(asset_type, safe='')}"
        else:
            chart = f"https://hop.fun/{launch.curve_id}"

        return f"""━━━━━━━━━━━━━━━━━━━━━━━
*{escape_markdown(launch.coin_name)}* #{escape_markdown(launch.ticker)}
`{launch.curve_id}`

`{escape_markdown(launch.description or "N/A")}`

🌐 Social Media:
  - Twitter: {_social(launch.twitter, "no twitter")}
  - Telegram: {_social(launch.telegram, "no telegram")}
  - Website: {_social(launch.website, "no website")}

🔧 Token Info:
  - Curve ID: `{launch.curve_id}`
  - Token Type: `{asset_type or "N/A"}`
  - Chart: [View on Hop.fun]({chart})

📊 Background:
  - Deployer: [{escape_markdown(launch.creator)}]({EXPLORER_ADDRESS_URL}{launch.creator})
  - Tokens Launched: {tokens_launched} Token(s)
  - Deployer Balance: {deployer_balance:.2f} SUI
  - Creator Holdings: {creator_pct:.2f}%
━━━━━━━━━━━━━━━━━━━━━━━"""

    def format_trade_summary(self, summary) -> str:
        request = summary.request
        action = request.direction.value.upper()
        if summary.success:
            header = f"✅ *{action}* completed on {summary.success_count}/{summary.total} wallets"
        else:
            header = f"❌ *{action}* failed on all wallets"
        lines = [header, f"Curve: `{request.curve_id}`"]
        if summary.error:
            lines.append(f"Error: {escape_markdown(summary.error)}")
        for outcome in summary.outcomes:
            if outcome.success:
                lines.append(f"  - Wallet {outcome.wallet_index + 1}: [tx]({EXPLORER_TX_URL}{outcome.tx_digest})")
            else:
                lines.append(f"  - Wallet {outcome.wallet_index + 1}: {escape_markdown(outcome.error or 'failed')}")
        return "\n".join(lines)

    # ------------------------------------------------------------------ alerts

    async def send_listing(self, launch, asset_type, tokens_launched, deployer_balance, creator_pct) -> bool:
        try:
            text = self.format_listing(launch, asset_type, tokens_launched, deployer_balance, creator_pct)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"[Telegram] Failed to format listing: {e}")
            return False
        return await self.notify(text)

    async def send_trade_summary(self, summary) -> bool:
        return await self.notify(self.format_trade_summary(summary))

    async def send_creator_exit(self, token, summary) -> bool:
        text = (
            f"🚨 *Creator sold* {escape_markdown(token.display_name)}\n"
            f"Creator: `{token.creator}`\n"
            f"Protective sell: {summary.success_count}/{summary.total} wallets"
        )
        return await self.notify(text)
