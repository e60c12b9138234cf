#!/usr/bin/env python3
"""
iBarangay Admin Account Setup Script

Creates the first Admin account (and, with --init-db, the tables).

Usage (interactive):
    python -m ibarangay.scripts.create_admin

Usage (non-interactive):
    python -m ibarangay.scripts.create_admin --name "Juan Dela Cruz" \
        --email admin@minadeoro.gov.ph --password YourPass123 --init-db
"""
import sys
import getpass
import argparse

from dotenv import load_dotenv

load_dotenv()


def _prompt(label: str) -> str:
    try:
        return input(label).strip()
    except EOFError:
        print(f"{label.strip(': ')} is required in non-interactive mode.")
        sys.exit(1)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Create an iBarangay Admin account')
    parser.add_argument('--name', '-n', help='Full name of the administrator')
    parser.add_argument('--email', '-e', help='Admin email address')
    parser.add_argument('--password', '-p', help='Admin password (min 8 chars)')
    parser.add_argument('--init-db', action='store_true', help='Create database tables first')
    args = parser.parse_args(argv)

    print("\n" + "=" * 50)
    print("  iBarangay Admin Account Setup")
    print("=" * 50 + "\n")

    from ibarangay import db
    from ibarangay.app import create_app
    from ibarangay.models.user import ROLE_ADMIN
    from ibarangay.utils.directory_sync import DuplicateEmail, create_staff_account
    from ibarangay.utils.validators import ValidationError

    app = create_app()

    with app.app_context():
        if args.init_db:
            db.create_all()
            print("  Database tables created.")

        name = args.name or _prompt("Enter full name: ")
        email = args.email or _prompt("Enter email: ")
        password = args.password
        if not password:
            password = getpass.getpass("Enter password: ")
            if password != getpass.getpass("Confirm password: "):
                print("  Passwords do not match.")
                return 1

        try:
            user = create_staff_account(
                {'name': name, 'email': email, 'password': password, 'role': ROLE_ADMIN}
            )
        except (ValidationError, DuplicateEmail) as e:
            db.session.rollback()
            print(f"  {e}")
            return 1

        print(f"\n  Admin account created: {user.email} (id {user.id})\n")
        return 0


if __name__ == '__main__':
    sys.exit(main())
