from __future__ import annotations

import argparse
import asyncio
import getpass
import sys

from consulthub.core.config import get_settings
from consulthub.core.errors import ConsultHubError
from consulthub.persistence.db import SessionLocal, engine
from consulthub.services.audit import record_event
from consulthub.services.auth.admin_sessions import signup_admin


def _build_parser() -> argparse.ArgumentParser:
    # Provision operator console accounts without opening public admin signup.
    parser = argparse.ArgumentParser(description="Create an admin account for the operator console")
    parser.add_argument("--email", required=True, help="Admin email (unique)")
    parser.add_argument("--name", required=True, help="Admin display name")
    parser.add_argument(
        "--password",
        default=None,
        help="Admin password; prompted for when omitted so it stays out of shell history",
    )
    return parser


async def _create_admin(args: argparse.Namespace, password: str) -> int:
    settings = get_settings()
    try:
        async with SessionLocal() as session:
            admin = await signup_admin(
                session=session,
                email=args.email,
                password=password,
                name=args.name,
                settings=settings,
                commit=False,
            )
            # The admin row and its audit row commit together; a failed audit write leaves no admin.
            await record_event(
                session=session,
                actor_type="system",
                actor_id="create_admin",
                actor_role=None,
                event_type="admin.signup",
                outcome="success",
                resource_type="admin_account",
                resource_id=admin.id,
                metadata={"email": admin.email, "source": "cli"},
                commit=True,
                best_effort=False,
            )
    finally:
        await engine.dispose()

    print("Admin created:")
    print(f"  admin_id: {admin.id}")
    print(f"  email: {admin.email}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    password = args.password or getpass.getpass("Admin password: ")
    try:
        return asyncio.run(_create_admin(args, password))
    except ConsultHubError as exc:
        print(f"create_admin failed: {exc.message}", file=sys.stderr)
        return 1
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_admin failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
