import asyncio

import requests

from events import LaunchEvent
from models import TradeDirection, TradeRequest, TradeSummary, TransactionOutcome
from telegram_alert import TelegramNotifier, escape_markdown


class FakeResponse:
    def __init__(self, status_code=200, text="ok"):
        self.status_code = status_code
        self.text = text


class FakePost:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.calls = []

    def __call__(self, url, data=None, timeout=None):
        self.calls.append((url, data))
        if self.error:
            raise self.error
        return self.response


def test_escape_markdown():
    assert escape_markdown("moon_dog*[x]") == "moon\\_dog\\*\\[x\\]"
    assert escape_markdown(None) == ""


def test_send_markdown_posts_to_bot_api():
    post = FakePost()
    notifier = TelegramNotifier("TOKEN", "42", post=post)

    assert notifier.send_markdown("*hi*") is True
    url, data = post.calls[0]
    assert url == "https://api.telegram.org/botTOKEN/sendMessage"
    assert data["chat_id"] == "42"
    assert data["parse_mode"] == "Markdown"


def test_failed_delivery_is_reported_not_raised():
    notifier = TelegramNotifier("TOKEN", "42", post=FakePost(error=requests.ConnectionError("down")))
    assert notifier.send_markdown("x") is False

    notifier = TelegramNotifier("TOKEN", "42", post=FakePost(FakeResponse(400, "bad")))
    assert notifier.send_markdown("x") is False


def test_notifier_without_credentials_is_silent(monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    post = FakePost()
    notifier = TelegramNotifier(post=post)

    assert asyncio.run(notifier.notify("x")) is False
    assert post.calls == []


def test_listing_message_contains_background():
    post = FakePost()
    notifier = TelegramNotifier("TOKEN", "42", post=post)
    launch = LaunchEvent(curve_id="0xcurve", creator="0xcreator", coin_name="Moon_Dog", ticker="MDOG",
                         twitter="no twitter", website="https://moon.dog")

    assert asyncio.run(notifier.send_listing(launch, "0xa::a::A", 3, 2.5, 12.35)) is True
    text = post.calls[0][1]["text"]
    assert "*Moon\\_Dog* #MDOG" in text
    assert "Tokens Launched: 3 Token(s)" in text
    assert "Deployer Balance: 2.50 SUI" in text
    assert "Creator Holdings: 12.35%" in text
    assert "Twitter: N/A" in text
    assert "https://hop.ag/fun/0xa%3A%3Aa%3A%3AA" in text


def test_trade_summary_message():
    notifier = TelegramNotifier("TOKEN", "42", post=FakePost())
    summary = TradeSummary(
        request=TradeRequest(curve_id="0xcurve", direction=TradeDirection.SELL, percentage=100),
        outcomes=[TransactionOutcome(0, True, tx_digest="D1"), TransactionOutcome(1, False, error="No coins found")],
    )

    text = notifier.format_trade_summary(summary)

    assert text.startswith("✅ *SELL* completed on 1/2 wallets")
    assert "Wallet 1: [tx](https://suivision.xyz/txblock/D1)" in text
    assert "Wallet 2: No coins found" in text
