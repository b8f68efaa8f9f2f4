# src/sms_hub/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..core.errors import SmsHubError
from ..core.state import AppState

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)

# Longest list a command prints before summarizing the rest.
MAX_LINES = 20


class CommandRegistry:
    """Simple slash-command registry used by the CLI (/help, /countries, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(state, args, emit)
        except SmsHubError as exc:
            logger.debug("Command /%s failed", name, exc_info=True)
            return f"Error: {exc}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _clip(lines: list[str], total: int) -> list[str]:
    if total > MAX_LINES:
        return lines[:MAX_LINES] + [f"  ... and {total - MAX_LINES} more"]
    return lines


def _parse_int(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_countries(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    countries = await state.products.get_all_countries()
    if not countries:
        return "No countries returned by the vendor."
    lines = [f"Countries ({len(countries)}):"]
    lines += _clip([f"  {c.id:>4}  {c.name}" for c in countries], len(countries))
    return "\n".join(lines)


async def cmd_services(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /services              -> all services
    /services <country_id> -> services available in one country
    """
    country_id: int | None = None
    if args:
        country_id = _parse_int(args[0])
        if country_id is None:
            return "Usage: /services [country_id]"

    services = await state.products.get_all_services(country_id)
    if not services:
        return "No services returned by the vendor."
    lines = [f"Services ({len(services)}):"]
    lines += _clip([f"  {s.code:<6} {s.name}" for s in services], len(services))
    return "\n".join(lines)


async def cmd_top(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /top <service_code>"
    service_code = args[0]

    offers = await state.products.get_country_service_list(service_code)
    if not offers:
        return f"No offers for service {service_code}."
    offers.sort(key=lambda o: o.count, reverse=True)
    lines = [f"Top countries for {service_code}:"]
    lines += _clip(
        [f"  country {o.country_id:>4}: {o.count} numbers at {o.price:g}" for o in offers],
        len(offers),
    )
    return "\n".join(lines)


async def cmd_rate(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    rate = await state.pricing.get_current_rate()
    cfg = state.pricing.get_config()
    return f"Exchange rate: {rate:,.0f} (source={cfg.source_type}, margin={cfg.profit_margin:g}%)"


async def cmd_price(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /price <base_price>"
    try:
        base = float(args[0])
    except ValueError:
        return "Usage: /price <base_price>"
    price = await state.pricing.calculate_price_with_profit(base)
    return f"Price for {base:g}: {price:,.0f}"


async def cmd_stats(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    q = state.queue.stats()
    a = await state.repository.get_activations_stats()
    return (
        "Stats:\n"
        f"  Queue {q.name}: {q.state}, queued={q.queued}, active={q.active}/{q.capacity}\n"
        f"  Cache entries: {state.cache.size()}\n"
        f"  Activations: total={a.total}, waiting={a.waiting}, "
        f"completed={a.completed}, cancelled={a.cancelled}"
    )


async def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /sync countries
    /sync services
    /sync prices <service_code>
    """
    usage = "Usage: /sync countries | /sync services | /sync prices <service_code>"
    if not args:
        return usage

    what = args[0].lower()
    if emit:
        emit(f"[SYNC] Syncing {what}...")

    if what == "countries":
        n = await state.products.sync_countries()
        return f"Synced {n} countries."
    if what == "services":
        n = await state.products.sync_services()
        return f"Synced {n} services."
    if what == "prices":
        if len(args) < 2:
            return usage
        n = await state.products.sync_service_prices(args[1])
        return f"Synced {n} prices for {args[1]}."
    return usage


async def cmd_cache(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /cache        -> show cache size
    /cache clear  -> drop cached vendor responses
    """
    if args and args[0].lower() == "clear":
        removed = state.api.clear_cache()
        return f"Removed {removed} cached API responses."
    swept = state.cache.sweep_expired()
    return f"Cache entries: {state.cache.size()} (expired removed: {swept})"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("countries", cmd_countries, help_text="List vendor countries.")
registry.register("services", cmd_services, help_text="List vendor services: /services [country_id].")
registry.register("top", cmd_top, help_text="Top countries for a service: /top <service_code>.")
registry.register("rate", cmd_rate, help_text="Show the current exchange rate.")
registry.register("price", cmd_price, help_text="Price with profit: /price <base_price>.")
registry.register("stats", cmd_stats, help_text="Queue, cache and activation stats.")
registry.register(
    "sync", cmd_sync, help_text="Store vendor data: /sync countries | services | prices <service>."
)
registry.register("cache", cmd_cache, help_text="Cache diagnostics: /cache | /cache clear.")
