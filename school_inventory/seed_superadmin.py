import argparse
import os

from school_inventory.db import SessionLocal, commit, engine
from school_inventory.models import Base
from school_inventory.services.user_service import ensure_superadmin


def seed(email: str, password: str, create_tables: bool = False) -> bool:
    if create_tables:
        Base.metadata.create_all(engine)
    with SessionLocal() as db:
        _, created = ensure_superadmin(db, email=email, password=password)
        commit(db)
    return created


def main() -> None:
    parser = argparse.ArgumentParser(description='Create the super admin account, or reset its password if it exists.')
    parser.add_argument('--email', required=True, help='Super admin login email.')
    parser.add_argument(
        '--password',
        default=os.environ.get('SUPERADMIN_PASSWORD'),
        help='Password to set. Defaults to the SUPERADMIN_PASSWORD environment variable.',
    )
    parser.add_argument('--create-tables', action='store_true', help='Create missing tables before seeding.')
    args = parser.parse_args()
    if not args.password:
        parser.error('--password or SUPERADMIN_PASSWORD is required')

    created = seed(args.email, args.password, create_tables=args.create_tables)
    print(f'Super admin {"created" if created else "updated"}: {args.email.strip().lower()}')


if __name__ == '__main__':
    main()
