"""CLI script to bootstrap an administrator account.

Usage: python scripts/create_admin.py EMAIL FULL_NAME [--password PASSWORD]

The password is prompted for when not given on the command line.
"""
import sys
import argparse
import getpass
import pathlib
# Ensure `backend/` is on sys.path so package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from licensing_exams.database import engine, create_db_and_tables
from licensing_exams import models, services


def main(email: str, full_name: str, password: str) -> int:
    """Create the admin account and print its id."""
    create_db_and_tables()
    with Session(engine) as session:
        try:
            user = services.AuthService(session).register(email, password, full_name, role=models.UserRole.ADMIN)
        except ValueError as e:
            print(f'Could not create admin: {e}')
            return 1
        print(f'Created admin {user.email} (id={user.id})')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('email')
    parser.add_argument('full_name')
    parser.add_argument('--password', help='Password for the new account (prompted when omitted)')
    args = parser.parse_args()
    pw = args.password or getpass.getpass('Password: ')
    sys.exit(main(args.email, args.full_name, pw))
