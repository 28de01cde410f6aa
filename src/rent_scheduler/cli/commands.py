# src/rent_scheduler/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Union, cast

from ..core.state import AppState
from ..rentals.generation import (
    GenerationPreview,
    GenerationReport,
    generate_rents_for_period,
    preview_generation,
)
from ..rentals.models import Payment, Rent, RentNotFoundError, next_period
from ..rentals.payments import record_payment
from ..tasks.task_models import TaskBusyError, TaskNotFoundError

CommandEmitter = Callable[[str], None]
CommandResult = Union[str, Awaitable[str]]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the admin console (/help, /status, ...)."""

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
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            result = cast(CommandHandler3, handler)(state, args, emit)
        else:
            result = cast(CommandHandler2, handler)(state, args)

        if inspect.isawaitable(result):
            result = await result
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "never"


def _format_generation(report: GenerationReport) -> str:
    lines = [
        f"Rents {report.month:02d}/{report.year}: created={report.created_count} "
        f"existing={report.existing} scanned={report.contracts_scanned} errors={len(report.errors)}"
    ]
    for c in report.created:
        who = f" ({c.tenants})" if c.tenants else ""
        lines.append(f"  + rent #{c.rent_id} contract #{c.contract_id} {c.address}{who}: {c.amount_due} due {c.due_date}")
    for e in report.errors:
        lines.append(f"  ! contract #{e.contract_id} {e.address}: {e.error}")
    return "\n".join(lines)


def _format_preview(preview: GenerationPreview) -> str:
    lines = [
        f"Preview {preview.month:02d}/{preview.year}: contracts={preview.contracts} "
        f"to-generate={preview.to_generate} existing={preview.existing} total={preview.total_amount}"
    ]
    for p in preview.lines:
        who = f" ({p.tenants})" if p.tenants else ""
        lines.append(f"  [{p.action}] contract #{p.contract_id} {p.address}{who}: {p.amount_due} due {p.due_date}")
    return "\n".join(lines)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    scheduler = state.scheduler
    lines = [f"Scheduler: {'RUNNING' if scheduler.running else 'STOPPED'}"]
    for t in scheduler.get_tasks_status():
        busy = " [in progress]" if t["in_progress"] else ""
        lines.append(
            f"  {t['name']}: last={_fmt_ts(t['last_run'])} next={_fmt_ts(t['next_run'])}{busy}"
        )
    return "\n".join(lines)


async def cmd_run(
    state: AppState,
    args: list[str],
    emit: CommandEmitter | None = None,
) -> str:
    """
    /run <task-name>  -> run a scheduled task now
    """
    if not args:
        names = ", ".join(t["name"] for t in state.scheduler.get_tasks_status())
        return f"Usage: /run <task>. Tasks: {names}"

    name = args[0]
    if emit:
        emit(f"[SCHEDULER] Running {name}...")

    try:
        result = await state.scheduler.force_run_task(name)
    except TaskNotFoundError as e:
        return str(e)
    except TaskBusyError as e:
        return str(e)
    except Exception as e:
        logger.exception("Forced run of %s failed", name)
        return f"Task {name} failed: {e}"

    if isinstance(result, GenerationReport):
        return _format_generation(result)
    updated = getattr(result, "updated", None)
    if updated is not None:
        return f"Task {name} done: {updated} rents updated."
    return f"Task {name} done."


async def cmd_generate(state: AppState, args: list[str]) -> str:
    """
    /generate <month> <year> [force|preview] [contract ids...]
    /generate next [force|preview]
    """
    usage = "Usage: /generate <month> <year> [force|preview] [contract ids...] | /generate next [force|preview]"
    if not args:
        return usage

    try:
        if args[0].lower() == "next":
            month, year = next_period(state.clock())
            rest = args[1:]
        else:
            if len(args) < 2:
                return usage
            month, year = int(args[0]), int(args[1])
            rest = args[2:]
        flags: set[str] = set()
        while rest and rest[0].lower() in ("force", "preview"):
            flags.add(rest[0].lower())
            rest = rest[1:]
        contract_ids = [int(a) for a in rest] or None
    except ValueError:
        return usage

    try:
        if "preview" in flags:
            preview = await asyncio.to_thread(
                preview_generation, state.store, month, year, contract_ids=contract_ids
            )
            return _format_preview(preview)

        report = await asyncio.to_thread(
            generate_rents_for_period,
            state.store,
            month,
            year,
            contract_ids=contract_ids,
            force="force" in flags,
        )
    except ValueError as e:
        return str(e)
    return _format_generation(report)


def _pay_and_reload(
    state: AppState, rent_id: int, amount: str, method: str, payer: str
) -> tuple[Payment, Rent | None]:
    now = state.clock()
    payment = record_payment(
        state.store,
        rent_id,
        amount,
        paid_on=now.date(),
        method=method,
        payer=payer,
        now=now,
    )
    return payment, state.store.get_rent(rent_id)


async def cmd_pay(state: AppState, args: list[str]) -> str:
    """
    /pay <rent id> <amount> [method] [payer...]
    """
    if len(args) < 2:
        return "Usage: /pay <rent id> <amount> [method] [payer]"

    try:
        rent_id = int(args[0])
    except ValueError:
        return "Rent id must be an integer."

    method = args[2] if len(args) > 2 else "transfer"
    payer = " ".join(args[3:]) if len(args) > 3 else ""

    # Waits for the write lock: keep it off the event loop.
    try:
        payment, rent = await asyncio.to_thread(_pay_and_reload, state, rent_id, args[1], method, payer)
    except (ValueError, RentNotFoundError) as e:
        return str(e)

    status = rent.status.value if rent else "?"
    return f"Payment #{payment.id} of {payment.amount} recorded on rent #{rent_id} (status: {status})."


async def cmd_rents(state: AppState, args: list[str]) -> str:
    """
    /rents              -> all rents
    /rents <month> <year>
    """
    month = year = None
    if len(args) >= 2:
        try:
            month, year = int(args[0]), int(args[1])
        except ValueError:
            return "Usage: /rents [<month> <year>]"

    rents = await asyncio.to_thread(state.store.list_rents, month=month, year=year)
    if not rents:
        return "No rents."
    lines = [f"{len(rents)} rents:"]
    for r in rents:
        lines.append(
            f"  #{r.id} contract #{r.contract_id} {r.month:02d}/{r.year} "
            f"{r.amount_paid}/{r.amount_due} due {r.due_date} [{r.status.value}]"
        )
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show scheduler and task status.")
registry.register("run", cmd_run, help_text="Run a scheduled task now: /run <task>.")
registry.register(
    "generate",
    cmd_generate,
    help_text="Generate rents: /generate <month> <year> [force|preview] [ids...] | /generate next.",
)
registry.register("pay", cmd_pay, help_text="Record a payment: /pay <rent id> <amount> [method] [payer].")
registry.register("rents", cmd_rents, help_text="List rents: /rents [<month> <year>].")
