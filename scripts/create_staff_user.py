import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from booking_desk.db import SessionLocal, init_db  # noqa: E402
from booking_desk.errors import ConflictError, ValidationFailed  # noqa: E402
from booking_desk.models import STAFF_ROLES  # noqa: E402
from booking_desk.services import create_user  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a staff account that can log in to the desk.")
    parser.add_argument("--name", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--phone", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument(
        "--role",
        default="ADMINISTRATOR",
        choices=sorted(role.value for role in STAFF_ROLES),
    )
    parser.add_argument("--department", default=None)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if len(args.password) < 6:
        print("password must be at least 6 characters", file=sys.stderr)
        return 2

    init_db()
    with SessionLocal() as db:
        try:
            user = create_user(
                db,
                name=args.name,
                phone=args.phone,
                email=args.email,
                role=args.role,
                password=args.password,
                department=args.department,
            )
        except (ConflictError, ValidationFailed) as exc:
            print(str(exc), file=sys.stderr)
            return 1
    print(f"Created {user.role.value} {user.email} (id={user.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
