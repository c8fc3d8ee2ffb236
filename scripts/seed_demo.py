from __future__ import annotations

import argparse
import asyncio
import sys

from discdesk.core.logging import configure_logging
from discdesk.persistence.db import SessionLocal, engine
from discdesk.services.demo.cooldown import RateLimitedError
from discdesk.services.demo.lock import ProvisioningInProgressError
from discdesk.services.demo.provisioner import provision_demo_environment


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reset a tenant's demo environment")
    parser.add_argument("--tenant", required=True, help="Tenant identifier")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Skip the cooldown window check (the run is still logged)",
    )
    parser.add_argument(
        "--scope",
        choices=("demo", "tenant"),
        default=None,
        help="Cleanup scope override; defaults to DEMO_CLEANUP_SCOPE",
    )
    return parser


async def seed_demo(args: argparse.Namespace) -> int:
    # Use the shared async session factory so env config matches the API container.
    try:
        async with SessionLocal() as session:
            summary = await provision_demo_environment(
                session,
                args.tenant,
                skip_cooldown=args.force,
                cleanup_scope=args.scope,
                actor_id="seed_demo",
            )
    except RateLimitedError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except ProvisioningInProgressError as exc:
        print(str(exc), file=sys.stderr)
        return 3
    finally:
        await engine.dispose()

    print(summary.message)
    print(f"  clients: {summary.clients_created}")
    print(f"  staff: {summary.staff_created}")
    print(f"  assessments: {summary.assessments_created}")
    print(f"  insights: {summary.insights_generated}/{summary.clients_created}")
    return 0


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    # Exit non-zero on failure so CI/dev scripts can detect issues.
    try:
        return asyncio.run(seed_demo(args))
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
