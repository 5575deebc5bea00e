#!/usr/bin/env python3
"""
Kairo admin CLI -- accounts, practices and trial checks against the database.

Talks to the stores directly (no running server needed). Uses DATABASE_URL
from the environment / .env like the API does, unless --db is given.

Usage:
  python main.py create-practice --name "Elm Surgery" --email elm@example.org \\
      --ods-code G81234 --admin-email admin@example.org
  python main.py create-user --email gp@example.org --role GP --practice-id 1
  python main.py create-user --email root@example.org --role SUPER_ADMIN
  python main.py seed-demo
  python main.py trial-status 1
  python main.py list-practices
  python main.py list-users 1
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.credentials import encode_legacy, hash_password
from auth.models import Role, User
from auth.store import UserStore
from practice.models import Practice
from practice.onboarding import OnboardingConflictError, register_practice
from practice.store import PracticeStore
from practice.trial import compute_trial_status, format_time_remaining

# Demo data. Staff passwords are stored in the legacy base64 form so the
# legacy login path has accounts to exercise; reset them before real use.
_DEMO_PASSWORD = "Password123!"
_DEMO_PRACTICE = Practice(
    name="Avondale Medical Centre",
    email="info@avondale-medical.co.zw",
    phone="+263 242 302 456",
    ods_code="G82018",
)
_DEMO_ADMIN = ("admin@avondale-medical.co.zw", "Tendai", "Moyo")
_DEMO_STAFF = [
    ("dr.chikwanha@avondale-medical.co.zw", "Tatenda", "Chikwanha", Role.GP),
    ("nurse.mutasa@avondale-medical.co.zw", "Rudo", "Mutasa", Role.NURSE),
    ("reception@avondale-medical.co.zw", "Kudzai", "Nyathi", Role.RECEPTIONIST),
]


def _read_password(given: Optional[str]) -> str:
    """Return --password if given, otherwise prompt twice without echo."""
    if given:
        return given
    first = getpass.getpass("Password: ")
    if first != getpass.getpass("Repeat password: "):
        raise SystemExit("  [!] Passwords do not match.")
    if len(first) < 8:
        raise SystemExit("  [!] Password must be at least 8 characters.")
    return first


def cmd_create_user(args: argparse.Namespace, users: UserStore, practices: PracticeStore) -> int:
    if args.role != Role.SUPER_ADMIN.value:
        if args.practice_id is None:
            print("  [!] --practice-id is required for every role except SUPER_ADMIN.")
            return 2
        if practices.get_practice(args.practice_id) is None:
            print(f"  [!] Practice {args.practice_id} does not exist.")
            return 1
    user = User(
        email=args.email,
        role=args.role,
        first_name=args.first_name,
        last_name=args.last_name,
        practice_id=None if args.role == Role.SUPER_ADMIN.value else args.practice_id,
    )
    try:
        user_id = users.create_user(user, password=hash_password(_read_password(args.password)))
    except IntegrityError:
        print(f"  [!] A user with email {args.email} already exists.")
        return 1
    print(f"  Created {args.role} user {args.email} (id {user_id}).")
    return 0


def cmd_create_practice(args: argparse.Namespace, users: UserStore, practices: PracticeStore) -> int:
    try:
        result = register_practice(
            practices,
            users,
            Practice(name=args.name, email=args.email, phone=args.phone, ods_code=args.ods_code),
            User(email=args.admin_email, role="", first_name=args.admin_first_name, last_name=args.admin_last_name),
            admin_password=hash_password(_read_password(args.admin_password)),
            trial_days=args.trial_days,
        )
    except OnboardingConflictError as exc:
        print(f"  [!] {exc}.")
        return 1
    print(f"  Created practice {result.practice.name} (id {result.practice.id}).")
    print(f"  Admin: {result.admin.email} (id {result.admin.id}).")
    if result.practice.is_trial:
        print(f"  Trial ends {result.practice.trial_ends_at}.")
    return 0


def cmd_seed_demo(args: argparse.Namespace, users: UserStore, practices: PracticeStore) -> int:
    existing = practices.get_practice_by_email(_DEMO_PRACTICE.email)
    if existing is not None:
        print(f"  Demo practice already present (id {existing.id}); nothing to do.")
        return 0
    email, first, last = _DEMO_ADMIN
    result = register_practice(
        practices,
        users,
        Practice(**{k: getattr(_DEMO_PRACTICE, k) for k in ("name", "email", "phone", "ods_code")}),
        User(email=email, role="", first_name=first, last_name=last),
        admin_password=encode_legacy(_DEMO_PASSWORD),
        trial_days=args.trial_days,
    )
    practice_id = result.practice.id
    print(f"  Created practice: {result.practice.name} (id {practice_id})")
    print(f"  Created user: {email} ({Role.PRACTICE_ADMIN.value})")
    for email, first, last, role in _DEMO_STAFF:
        if users.get_by_email(email) is not None:
            continue
        users.create_user(
            User(email=email, role=role.value, first_name=first, last_name=last, practice_id=practice_id),
            password=encode_legacy(_DEMO_PASSWORD),
        )
        print(f"  Created user: {email} ({role.value})")
    print(f"\n  All demo accounts use the password {_DEMO_PASSWORD!r} (legacy encoding).")
    return 0


def cmd_trial_status(args: argparse.Namespace, users: UserStore, practices: PracticeStore) -> int:
    practice = practices.get_practice(args.practice_id)
    if practice is None:
        print(f"  [!] Practice {args.practice_id} does not exist.")
        return 1
    status = compute_trial_status(practice)
    print(f"\n  {status.practice_name} (id {status.practice_id})")
    print(f"  State:        {status.state.value}")
    print(f"  Tier:         {status.subscription_tier}")
    print(f"  Active:       {'yes' if status.is_active else 'no'}")
    if status.is_trial:
        print(f"  Trial ends:   {status.trial_ends_at or 'no expiry'}")
        if status.hours_remaining is not None and not status.trial_expired:
            print(f"  Remaining:    {format_time_remaining(status.hours_remaining)}")
    print()
    return 0


def cmd_list_practices(args: argparse.Namespace, users: UserStore, practices: PracticeStore) -> int:
    rows = practices.list_practices()
    if not rows:
        print("  No practices.")
        return 0
    for practice in rows:
        status = compute_trial_status(practice)
        print(
            f"  {practice.id:>4}  {status.state.value:<14} {practice.subscription_tier:<9} "
            f"{practice.name} <{practice.email}>"
        )
    return 0


def cmd_list_users(args: argparse.Namespace, users: UserStore, practices: PracticeStore) -> int:
    if practices.get_practice(args.practice_id) is None:
        print(f"  [!] Practice {args.practice_id} does not exist.")
        return 1
    for user in users.list_for_practice(args.practice_id):
        flag = "" if user.is_active else "  (inactive)"
        print(f"  {user.id:>4}  {user.role:<15} {user.email}{flag}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kairo",
        description="Kairo administration: users, practices and trial status.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", metavar="URL", help="SQLAlchemy database URL (default: DATABASE_URL setting)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-user", help="Create a user with a bcrypt password")
    p.add_argument("--email", required=True)
    p.add_argument("--role", choices=[r.value for r in Role], default=Role.GP.value)
    p.add_argument("--first-name", default="")
    p.add_argument("--last-name", default="")
    p.add_argument("--practice-id", type=int)
    p.add_argument("--password", help="Password (prompted when omitted)")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("create-practice", help="Create a practice and its admin user")
    p.add_argument("--name", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--phone", default="")
    p.add_argument("--ods-code", default="")
    p.add_argument("--admin-email", required=True)
    p.add_argument("--admin-first-name", default="")
    p.add_argument("--admin-last-name", default="")
    p.add_argument("--admin-password", help="Admin password (prompted when omitted)")
    p.add_argument(
        "--trial-days",
        type=int,
        default=None,
        help="Trial length in days (default: TRIAL_LENGTH_DAYS setting; 0 = paid, no trial)",
    )
    p.set_defaults(func=cmd_create_practice)

    p = sub.add_parser("seed-demo", help="Create the demo practice and staff accounts")
    p.add_argument("--trial-days", type=int, default=None)
    p.set_defaults(func=cmd_seed_demo)

    p = sub.add_parser("trial-status", help="Show a practice's trial state")
    p.add_argument("practice_id", type=int)
    p.set_defaults(func=cmd_trial_status)

    p = sub.add_parser("list-practices", help="List practices with their trial state")
    p.set_defaults(func=cmd_list_practices)

    p = sub.add_parser("list-users", help="List a practice's staff accounts")
    p.add_argument("practice_id", type=int)
    p.set_defaults(func=cmd_list_users)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    users = UserStore(args.db)
    practices = PracticeStore(args.db)
    try:
        return args.func(args, users, practices)
    finally:
        users.close()
        practices.close()


if __name__ == "__main__":
    sys.exit(main())
