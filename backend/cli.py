#!/usr/bin/env python3
"""
Circulation CLI - run circulation operations against the configured store.

Covers the desk workflow without the HTTP API:
1. Catalog (add or re-stock books, availability)
2. Directory (register and suspend accounts)
3. Loans (issue, return, overdue list)
4. Fines (assess, pay, outstanding totals)
5. Maintenance (reconciliation sweep, test tokens)

Usage:
    python cli.py add-book 978-0-13-110362-7 "The C Programming Language" -q 3
    python cli.py issue BOOK_ID BORROWER_ID --days 14
    python cli.py reconcile --correct
    python cli.py --help
"""
import argparse
import asyncio
import sys
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from circulation.config import get_settings
from circulation.core.exceptions import AppException
from circulation.core.logging import setup_logging
from circulation.core.security import create_access_token
from circulation.database import close_db, init_db
from circulation.dependencies import (
    build_store,
    get_catalog_ledger,
    get_directory,
    get_fine_engine,
    get_loan_manager,
    get_reconciliation_sweep,
)
from circulation.schemas.book import BookCreate
from circulation.schemas.common import utcnow
from circulation.schemas.fine import FineReason, FineStatus
from circulation.schemas.user import UserCreate, UserRole


# ============================================================================
# COLORS AND FORMATTING
# ============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'


def print_header(text: str):
    """Print a header."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'='*70}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.HEADER}  {text}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'='*70}{Colors.END}\n")


def print_success(text: str):
    print(f"{Colors.GREEN}✓ {text}{Colors.END}")


def print_error(text: str):
    print(f"{Colors.RED}✗ {text}{Colors.END}")


def print_warning(text: str):
    print(f"{Colors.YELLOW}⚠ {text}{Colors.END}")


def print_info(text: str):
    print(f"{Colors.BLUE}ℹ {text}{Colors.END}")


def money(value: str) -> Decimal:
    """argparse type for non-negative amounts."""
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not an amount: {value}")
    if amount < 0:
        raise argparse.ArgumentTypeError("amount cannot be negative")
    return amount


# ============================================================================
# COMPONENTS
# ============================================================================

class Circulation:
    """The circulation components wired to the configured store."""

    def __init__(self):
        self.settings = get_settings()
        self.store = build_store()
        self.directory = get_directory(self.store)
        self.ledger = get_catalog_ledger(self.store, self.settings)
        self.fines = get_fine_engine(self.store, self.settings)
        self.loans = get_loan_manager(
            self.store, self.ledger, self.directory, self.fines, self.settings
        )
        self.sweep = get_reconciliation_sweep(self.ledger, self.loans)


# ============================================================================
# COMMANDS
# ============================================================================

async def cmd_add_book(c: Circulation, args):
    book = await c.ledger.add_book(BookCreate(
        isbn13=args.isbn13,
        title=args.title,
        authors=args.author or [],
        location=args.location,
        quantity=args.quantity,
    ))
    print_success(f"{book.id}  {book.title}  ({book.available_quantity}/{book.quantity} available)")


async def cmd_books(c: Circulation, args):
    print_header("CATALOG")
    for book in await c.ledger.list_books():
        print(
            f"  {book.id}  {book.isbn13}  {book.title[:40]:<40}  "
            f"{book.available_quantity}/{book.quantity}  {book.status.value}"
        )


async def cmd_availability(c: Circulation, args):
    view = await c.ledger.get_availability(args.book_id)
    print_info(f"{view.title} ({view.isbn13})")
    print(f"  quantity:           {view.quantity}")
    print(f"  available:          {view.available_quantity}")
    print(f"  currently borrowed: {view.currently_borrowed}")
    print(f"  status:             {view.status.value}")


async def cmd_register_user(c: Circulation, args):
    user = await c.directory.register(
        UserCreate(email=args.email, full_name=args.full_name, role=UserRole(args.role))
    )
    print_success(f"Registered {user.role.value} {user.id} <{user.email}>")


async def cmd_suspend(c: Circulation, args):
    user = await c.directory.set_suspended(args.user_id, not args.reinstate)
    state = "suspended" if user.is_suspended else "reinstated"
    print_success(f"{user.id} {state}")


async def cmd_issue(c: Circulation, args):
    now = utcnow()
    days = args.days if args.days is not None else c.settings.default_loan_days
    due_date = now + timedelta(days=days)
    loan = await c.loans.issue_book(args.book_id, args.borrower_id, due_date, now=now)
    print_success(f"Loan {loan.id} due {loan.due_date.date().isoformat()}")


async def cmd_return(c: Circulation, args):
    loan = await c.loans.return_book(args.loan_id)
    print_success(f"Loan {loan.id} returned")
    if loan.fine_amount > 0:
        print_warning(f"Late return fine: {loan.fine_amount}")


async def cmd_fine(c: Circulation, args):
    fine = await c.loans.apply_fine(
        args.loan_id,
        reason=FineReason(args.reason),
        manual_amount=args.amount,
        discount=args.discount,
    )
    print_success(
        f"Fine {fine.id}: {fine.reason.value} amount={fine.amount} "
        f"discount={fine.discount} total={fine.total_amount}"
    )


async def cmd_pay(c: Circulation, args):
    fine = await c.fines.mark_paid(args.fine_id)
    print_success(f"Fine {fine.id} paid ({fine.total_amount})")


async def cmd_fines(c: Circulation, args):
    status = FineStatus.UNPAID if args.unpaid else None
    fines = await c.fines.list_fines(borrower_id=args.borrower_id, status=status)
    print_header(f"FINES FOR {args.borrower_id}")
    for fine in fines:
        print(f"  {fine.id}  {fine.loan_id}  {fine.reason.value:<10}  {fine.total_amount:>8}  {fine.status.value}")
    count, total = await c.fines.outstanding_total(args.borrower_id)
    print_info(f"Outstanding: {count} unpaid, total {total}")


async def cmd_overdue(c: Circulation, args):
    now = utcnow()
    loans = await c.loans.list_overdue_loans(now)
    print_header("OVERDUE LOANS")
    if not loans:
        print_success("Nothing overdue")
    for loan in loans:
        days = (now.date() - loan.due_date.date()).days
        print(f"  {loan.id}  book={loan.book_id}  borrower={loan.borrower_id}  {days} day(s) late")


async def cmd_reconcile(c: Circulation, args):
    reports = await c.sweep.run(correct=args.correct)
    if not reports:
        print_success("Ledger matches open loans")
        return
    for report in reports:
        line = (
            f"{report.book_id} ({report.isbn13}): currently_borrowed="
            f"{report.currently_borrowed} open_loans={report.open_loans}"
        )
        if report.corrected:
            print_success(f"corrected {line}")
        else:
            print_warning(line)


async def cmd_token(c: Circulation, args):
    user = await c.directory.get_user(args.user_id)
    print(create_access_token(user.id, user.role, timedelta(hours=args.hours)))


async def run_command(args) -> int:
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level, colored=not args.no_color)
    if settings.store_backend == "sql":
        await init_db()

    try:
        await args.handler(Circulation(), args)
        return 0
    except AppException as e:
        print_error(f"[{e.error_code}] {e.message}")
        return 1
    finally:
        await close_db()


# ============================================================================
# MAIN
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Circulation CLI - catalog, loans and fines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli.py register-user ana@example.org "Ana Lima"
  python cli.py add-book 9780131103627 "The C Programming Language" -a Kernighan -a Ritchie -q 2
  python cli.py issue book_1a2b3c4d5e6f usr_0a1b2c3d4e5f --days 7
  python cli.py fine loan_0a1b2c3d4e5f -r Damage --amount 12.50
  python cli.py reconcile --correct
        """
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--no-color", action="store_true", help="Plain log output (for files and pipes)")
    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser("add-book", help="Add a book or re-stock an ISBN-13")
    p.add_argument("isbn13")
    p.add_argument("title")
    p.add_argument("-a", "--author", action="append", help="Author (repeatable)")
    p.add_argument("-l", "--location", help="Shelf location")
    p.add_argument("-q", "--quantity", type=int, default=1)
    p.set_defaults(handler=cmd_add_book)

    p = commands.add_parser("books", help="List the catalog")
    p.set_defaults(handler=cmd_books)

    p = commands.add_parser("availability", help="Show copy counts for a book")
    p.add_argument("book_id")
    p.set_defaults(handler=cmd_availability)

    p = commands.add_parser("register-user", help="Register a library account")
    p.add_argument("email")
    p.add_argument("full_name")
    p.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.MEMBER.value)
    p.set_defaults(handler=cmd_register_user)

    p = commands.add_parser("suspend", help="Suspend (or reinstate) an account")
    p.add_argument("user_id")
    p.add_argument("--reinstate", action="store_true")
    p.set_defaults(handler=cmd_suspend)

    p = commands.add_parser("issue", help="Issue a book to a borrower")
    p.add_argument("book_id")
    p.add_argument("borrower_id")
    p.add_argument("--days", type=int, help="Loan period (default: DEFAULT_LOAN_DAYS)")
    p.set_defaults(handler=cmd_issue)

    p = commands.add_parser("return", help="Return a loan")
    p.add_argument("loan_id")
    p.set_defaults(handler=cmd_return)

    p = commands.add_parser("fine", help="Assess a fine against a loan")
    p.add_argument("loan_id")
    p.add_argument("-r", "--reason", choices=[r.value for r in FineReason], default=FineReason.LATE_RETURN.value)
    p.add_argument("--amount", type=money, help="Fixed amount instead of the per-day rate")
    p.add_argument("--discount", type=money, default=Decimal("0"))
    p.set_defaults(handler=cmd_fine)

    p = commands.add_parser("pay", help="Mark a fine paid")
    p.add_argument("fine_id")
    p.set_defaults(handler=cmd_pay)

    p = commands.add_parser("fines", help="List a borrower's fines")
    p.add_argument("borrower_id")
    p.add_argument("--unpaid", action="store_true")
    p.set_defaults(handler=cmd_fines)

    p = commands.add_parser("overdue", help="List overdue loans")
    p.set_defaults(handler=cmd_overdue)

    p = commands.add_parser("reconcile", help="Compare borrowed counters with open loans")
    p.add_argument("--correct", action="store_true", help="Rewrite drifting counters")
    p.set_defaults(handler=cmd_reconcile)

    p = commands.add_parser("token", help="Mint a bearer token for a registered user")
    p.add_argument("user_id")
    p.add_argument("--hours", type=int, default=24)
    p.set_defaults(handler=cmd_token)

    return parser


def main():
    """Main entry point."""
    args = build_parser().parse_args()

    try:
        sys.exit(asyncio.run(run_command(args)))
    except KeyboardInterrupt:
        print(f"\n\n{Colors.YELLOW}Interrupted by user{Colors.END}")
        sys.exit(1)


if __name__ == "__main__":
    main()
