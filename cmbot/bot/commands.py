# cmbot/bot/commands.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from cmbot.schemas.currency import CurrencyDetails
from cmbot.services.currency_resolver import CurrencyNotFoundError, CurrencyResolver
from cmbot.services.presentation import CurrencyRenderer, format_decimal, format_percentage

logger = logging.getLogger("cmbot.commands")


GENERIC_ERROR = "Sorry, something went wrong. Please try again later."


@dataclass(frozen=True)
class ChatMessage:
    chat_id: int
    text: str
    from_user: Optional[str] = None
    chat: Optional[str] = None


@dataclass(frozen=True)
class TextReply:
    chat_id: int
    text: str
    markdown: bool = True


@dataclass(frozen=True)
class PhotoReply:
    chat_id: int
    name: str
    content: bytes
    content_type: str


INLINE_RESULT_LIMIT = 10


@dataclass(frozen=True)
class InlineResult:
    id: str
    title: str
    description: str
    currency: str


Reply = Union[TextReply, PhotoReply]


def start_command() -> str:
    return (
        "*Welcome!*\n\n"
        "My name is *cmbot* and I am programmed to give you the newest price information "
        "about all crypto currencies from CoinMarketCap.\n\n"
        "Use /help to see a list of my supported commands"
    )


def help_command(bot_username: str) -> str:
    return (
        "You can control me by sending the following commands:\n\n"
        "*Commands*\n"
        "/coin currency *-* Request a coin from CoinMarketCap. *(i.e. /coin eth)*\n"
        "/help *-* Display the current help\n"
        "/start *-* Display the welcome message\n\n"
        "*Inline Queries*\n"
        "This is the recommended way to request price information. "
        f"Just use @{bot_username} to search through all coins on CoinMarketCap."
    )


def command_not_found(command: str) -> str:
    return f"Command not found: *{command}*. Use /help for a list of supported commands"


def currency_not_found(query: str) -> str:
    return f"Currency not found: *{query}*"


def log_currency_request(message: ChatMessage, details: CurrencyDetails, request_type: str) -> None:
    fields: dict[str, Any] = {
        "from": message.from_user,
        "chat": message.chat,
        "chat_id": message.chat_id,
        "currency": details.symbol,
        "currency_id": details.id,
        "request_type": request_type,
    }
    logger.info(
        "%s from %s requested %s (%s), type='%s'",
        message.from_user,
        message.chat,
        details.name,
        details.symbol,
        request_type,
        extra={"request": fields},
    )


def coin_command(
    message: ChatMessage,
    currency: str,
    resolver: CurrencyResolver,
    renderer: CurrencyRenderer,
) -> PhotoReply:
    """Resolve `currency` and render it. Raises CurrencyNotFoundError when unmatched."""
    details = resolver.fetch_currency(currency)

    log_currency_request(message, details, "image")

    return PhotoReply(
        chat_id=message.chat_id,
        name=currency,
        content=renderer.render(details),
        content_type=renderer.content_type,
    )


def inline_query(query: str, resolver: CurrencyResolver, *, limit: int = INLINE_RESULT_LIMIT) -> List[InlineResult]:
    """Prefix search for "@bot <text>" queries against the current listings."""
    results: List[InlineResult] = []
    for details in resolver.search(query, limit=limit):
        results.append(
            InlineResult(
                id=details.id,
                title=f"{details.name} ({details.symbol})",
                description=f"${format_decimal(details.price)} | 24h {format_percentage(details.change_24h)}",
                currency=details.symbol,
            )
        )
    return results


def handle_command(
    message: ChatMessage,
    *,
    resolver: CurrencyResolver,
    renderer: CurrencyRenderer,
    bot_username: str,
) -> Reply:
    parts = message.text.strip().split(maxsplit=1)
    if not parts:
        return TextReply(message.chat_id, command_not_found(""))

    # "/coin@cmbot eth" -> "/coin"
    command = parts[0].split("@", 1)[0].lower()
    argument = parts[1].strip() if len(parts) > 1 else ""

    if command == "/start":
        return TextReply(message.chat_id, start_command())
    if command == "/help":
        return TextReply(message.chat_id, help_command(bot_username))
    if command != "/coin":
        return TextReply(message.chat_id, command_not_found(parts[0]))
    if not argument:
        return TextReply(message.chat_id, help_command(bot_username))

    try:
        return coin_command(message, argument, resolver, renderer)
    except CurrencyNotFoundError as e:
        return TextReply(message.chat_id, currency_not_found(e.query))
    except Exception:
        logger.exception("coin command failed | chat_id=%s | query=%r", message.chat_id, argument)
        return TextReply(message.chat_id, GENERIC_ERROR, markdown=False)
