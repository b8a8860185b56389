from __future__ import annotations

import argparse
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .categories import Category, Direction, category_label, direction_label, parse_category, parse_direction
from .config import AppConfig, load_config, open_kv_store
from .logging_config import configure_logging
from .models import DebtRecord, LedgerValidationError
from .store import LedgerStore, MutationResult, sorted_for_display
from .util.dates import parse_due_date
from .util.money import ParseResult, format_amount, format_rate, parse_amount, parse_rate


logger = logging.getLogger("debtnet_ledger")

_SHORT_ID = 8


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="debtnet-ledger")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")

    sub = p.add_subparsers(dest="cmd", required=True)

    add = sub.add_parser("add", help="Record a new debt")
    add.add_argument("--name", required=True, help="Who owes you / whom you owe")
    add.add_argument("--amount", required=True, help="Principal amount, e.g. 5000 or '1 500,50'")
    add.add_argument(
        "--direction",
        required=True,
        help="'owed-to-me' (they owe you) or 'i-owe' (you owe them)",
    )
    add.add_argument("--category", default="other", help="personal, business, family, friend or other")
    add.add_argument("--note", default="", help="Free-text description")
    add.add_argument("--due", default="", help="Due date, e.g. 2025-12-26")
    add.add_argument("--interest", default="", help="Interest rate in percent (default: none)")

    edit = sub.add_parser("edit", help="Change fields of an existing debt")
    edit.add_argument("id", help="Record id (a unique prefix is enough)")
    edit.add_argument("--name")
    edit.add_argument("--amount")
    edit.add_argument("--direction")
    edit.add_argument("--category")
    edit.add_argument("--note")
    edit.add_argument("--due")
    edit.add_argument("--clear-due", action="store_true", help="Remove the due date")
    edit.add_argument("--interest")

    lst = sub.add_parser("list", help="List debts (newest first)")
    lst.add_argument(
        "--filter",
        choices=["all", "owed-to-me", "i-owe"],
        default="all",
        help="Show only one direction (default: all)",
    )
    lst.add_argument("--archived", action="store_true", help="Show settled debts instead of active ones")

    show = sub.add_parser("show", help="Show one debt in detail")
    show.add_argument("id")

    pay = sub.add_parser("pay", help="Record a partial (or full) payment")
    pay.add_argument("id")
    pay.add_argument("amount")

    toggle = sub.add_parser("toggle", help="Flip a debt between active and settled")
    toggle.add_argument("id")

    settle = sub.add_parser("settle", help="Mark a debt as settled")
    settle.add_argument("id")

    delete = sub.add_parser("delete", help="Delete a debt")
    delete.add_argument("id")

    clear = sub.add_parser("clear", help="Delete every debt in the ledger")
    clear.add_argument("--yes", action="store_true", help="Required: confirm the reset")

    sub.add_parser("stats", help="Show totals and counts")

    return p


def _require_ok(res: ParseResult, what: str) -> ParseResult:
    if not res.ok:
        raise SystemExit(f"Invalid {what}: {res.error}")
    return res


def _resolve_id(store: LedgerStore, raw: str) -> str:
    """Accept a full id or a unique prefix of one."""
    wanted = (raw or "").strip()
    if store.get(wanted) is not None:
        return wanted
    matches = [r.id for r in store.records if r.id.startswith(wanted)] if wanted else []
    if len(matches) > 1:
        raise SystemExit(f"Ambiguous id prefix {wanted!r} matches {len(matches)} debts; use more characters.")
    return matches[0] if matches else wanted


def _not_found(record_id: str) -> int:
    print(f"No debt with id {record_id!r}.")
    return 1


def _format_line(r: DebtRecord, cfg: AppConfig, now: datetime) -> str:
    sym = cfg.display.currency_symbol
    parts = [
        r.id[:_SHORT_ID],
        r.counterparty_name,
        format_amount(r.signed_amount(with_interest=r.has_interest), sym, signed=True),
        f"[{category_label(r.category)}]",
    ]
    if r.payments_made > 0:
        parts.append(f"remaining {format_amount(r.remaining_amount, sym)}")
    if r.due_at is not None:
        parts.append(f"due {r.due_at.date().isoformat()}")
    if r.is_overdue_at(now):
        parts.append("OVERDUE")
    if r.is_settled:
        parts.append("settled")
    return "  ".join(parts)


def _print_detail(r: DebtRecord, cfg: AppConfig, now: datetime) -> None:
    sym = cfg.display.currency_symbol
    print(f"Id:          {r.id}")
    print(f"Name:        {r.counterparty_name}")
    print(f"Direction:   {direction_label(r.direction)}")
    print(f"Category:    {category_label(r.category)}")
    print(f"Amount:      {format_amount(r.signed_amount(), sym, signed=True)}")
    if r.has_interest:
        print(f"Interest:    {format_rate(r.interest_rate_percent)} (+{format_amount(r.interest_amount, sym)})")
        print(f"With int.:   {format_amount(r.signed_amount(with_interest=True), sym, signed=True)}")
    print(f"Paid:        {format_amount(r.payments_made, sym)}")
    print(f"Remaining:   {format_amount(r.remaining_amount, sym)}")
    print(f"Note:        {r.note or '-'}")
    print(f"Created:     {r.created_at.isoformat() if r.created_at else '-'}")
    if r.due_at is not None:
        days = r.days_until_due(now.date())
        when = f"in {days} day(s)" if days is not None and days >= 0 else f"{abs(days or 0)} day(s) ago"
        print(f"Due:         {r.due_at.date().isoformat()} ({when})")
    print(f"Status:      {'settled' if r.is_settled else ('OVERDUE' if r.is_overdue_at(now) else 'active')}")


def _cmd_add(store: LedgerStore, args: argparse.Namespace, cfg: AppConfig) -> int:
    amount = _require_ok(parse_amount(args.amount), "amount")
    rate = _require_ok(parse_rate(args.interest), "interest rate")
    try:
        record = DebtRecord.create(
            counterparty_name=args.name,
            principal=amount,
            note=args.note,
            due_at=parse_due_date(args.due) if args.due else None,
            category=parse_category(args.category),
            direction=parse_direction(args.direction),
            interest_rate_percent=rate,
        )
    except ValueError as e:
        raise SystemExit(f"Invalid debt: {e}") from None

    stored = store.add(record)
    logger.info("Added debt id=%s", stored.id)
    print(_format_line(stored, cfg, store.now()))
    return 0


def _cmd_edit(store: LedgerStore, args: argparse.Namespace, cfg: AppConfig) -> int:
    record_id = _resolve_id(store, args.id)
    current = store.get(record_id)
    if current is None:
        return _not_found(record_id)

    changes: dict = {}
    try:
        if args.name is not None:
            changes["counterparty_name"] = args.name
        if args.amount is not None:
            changes["principal"] = _require_ok(parse_amount(args.amount), "amount").value
        if args.interest is not None:
            changes["interest_rate_percent"] = _require_ok(parse_rate(args.interest), "interest rate").value
        if args.note is not None:
            changes["note"] = args.note
        if args.category is not None:
            changes["category"] = parse_category(args.category)
        if args.direction is not None:
            changes["direction"] = parse_direction(args.direction)
        if args.clear_due:
            changes["due_at"] = None
        elif args.due is not None:
            changes["due_at"] = parse_due_date(args.due)
        result = store.update(current.model_copy(update=changes))
    except ValueError as e:
        raise SystemExit(f"Invalid debt: {e}") from None

    if result is MutationResult.NOT_FOUND:
        return _not_found(record_id)
    print(_format_line(store.get(record_id), cfg, store.now()))
    return 0


def _cmd_list(store: LedgerStore, args: argparse.Namespace, cfg: AppConfig) -> int:
    records = store.settled_records() if args.archived else store.active_records()
    if args.filter == "owed-to-me":
        records = [r for r in records if r.direction == Direction.OWED_TO_USER]
    elif args.filter == "i-owe":
        records = [r for r in records if r.direction == Direction.OWED_BY_USER]

    if not records:
        print("No settled debts." if args.archived else "No active debts.")
        return 0
    now = store.now()
    for r in sorted_for_display(records):
        print(_format_line(r, cfg, now))
    return 0


def _cmd_stats(store: LedgerStore, cfg: AppConfig) -> int:
    sym = cfg.display.currency_symbol
    s = store.summary(upcoming_days=cfg.display.upcoming_window_days)
    print(f"Owed to me:          {format_amount(s.total_owed_to_user, sym)}")
    print(f"Owed to me (+int.):  {format_amount(s.total_owed_to_user_with_interest, sym)}")
    print(f"I owe:               {format_amount(s.total_owed_by_user, sym)}")
    print(f"I owe (+int.):       {format_amount(s.total_owed_by_user_with_interest, sym)}")
    print(f"Net:                 {format_amount(s.net_balance, sym, signed=True)}")
    print(f"Outstanding total:   {format_amount(s.total_debt_amount, sym)}")
    print(f"Settled total:       {format_amount(s.total_paid_amount, sym)}")
    print(
        f"Debts: {s.record_count} (active {s.active_count}, settled {s.settled_count}, "
        f"overdue {s.overdue_count}, due within {cfg.display.upcoming_window_days} days {s.upcoming_count})"
    )

    totals = store.category_totals()
    if totals:
        print()
        print("By category:")
        for cat in Category:
            if cat in totals:
                print(f"  {category_label(cat):<10} {format_amount(totals[cat], sym)}")

    now = store.now()
    overdue = store.overdue_records()
    if overdue:
        print()
        print("Overdue:")
        for r in sorted_for_display(overdue):
            print(f"  {_format_line(r, cfg, now)}")
    return 0


def _run(store: LedgerStore, args: argparse.Namespace, cfg: AppConfig) -> int:
    if args.cmd == "add":
        return _cmd_add(store, args, cfg)
    if args.cmd == "edit":
        return _cmd_edit(store, args, cfg)
    if args.cmd == "list":
        return _cmd_list(store, args, cfg)
    if args.cmd == "stats":
        return _cmd_stats(store, cfg)
    if args.cmd == "clear":
        if not args.yes:
            raise SystemExit("Refusing to delete every debt without --yes.")
        n = len(store)
        store.clear_all()
        print(f"Deleted {n} debt(s).")
        return 0

    record_id = _resolve_id(store, args.id)

    if args.cmd == "show":
        rec = store.get(record_id)
        if rec is None:
            return _not_found(record_id)
        _print_detail(rec, cfg, store.now())
        return 0

    if args.cmd == "pay":
        amount = _require_ok(parse_amount(args.amount), "payment")
        try:
            result = store.apply_payment(record_id, amount)
        except LedgerValidationError as e:
            raise SystemExit(f"Payment rejected: {e}") from None
        if result is MutationResult.NOT_FOUND:
            return _not_found(record_id)
        rec = store.get(record_id)
        print(f"Remaining: {format_amount(rec.remaining_amount, cfg.display.currency_symbol)}")
        return 0

    if args.cmd == "toggle":
        result = store.toggle_settled(record_id)
    elif args.cmd == "settle":
        result = store.mark_settled(record_id)
    elif args.cmd == "delete":
        result = store.delete(record_id)
    else:
        raise SystemExit(f"Unknown command: {args.cmd}")

    if result is MutationResult.NOT_FOUND:
        return _not_found(record_id)
    if args.cmd == "delete":
        print(f"Deleted {record_id}.")
    else:
        print(_format_line(store.get(record_id), cfg, store.now()))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    cfg = load_config(args.config)
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)

    kv = open_kv_store(cfg.storage)
    try:
        store = LedgerStore(kv, key=cfg.storage.key)
        code = _run(store, args, cfg)
        if store.last_save_error is not None:
            logger.warning("Last change was not saved: %s", store.last_save_error)
        return code
    finally:
        kv.close()


if __name__ == "__main__":
    raise SystemExit(main())
