import argparse
import getpass

from sqlalchemy import select

from ipgeo.auth import register_user
from ipgeo.database import SessionLocal, init_db
from ipgeo.models.db_models import User


def main() -> None:
    """Create a user who can sign in to the API."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("email")
    parser.add_argument("--name", default=None, help="Display name (defaults to the email's local part).")
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    if not password or password != getpass.getpass("Repeat password: "):
        parser.error("passwords are empty or do not match")

    init_db()
    with SessionLocal() as session:
        if session.scalar(select(User).where(User.email == args.email.strip().lower())):
            parser.error(f"a user with email {args.email} already exists")
        user = register_user(session, args.name or args.email.split("@")[0], args.email, password)
    print(f"Created user id={user.id} email={user.email}")  # noqa: T201


if __name__ == "__main__":
    main()
