#!/usr/bin/env python
"""
Populate the database with the re-runnable QA fixture graph.

Usage:
    QA_SEED=1 python scripts/seed_qa.py --domain test.yourdomain.com
    QA_SEED=1 QA_SEED_RESET=1 python scripts/seed_qa.py
"""

import argparse
import os

from homeledger.config import Base, get_settings
from homeledger.core.logging import configure_logging
from homeledger.db import build_engine, build_session_factory
from homeledger.models import models  # noqa: F401
from homeledger.seeds.qa import DEFAULT_DOMAIN, SEED_PASSWORD, assert_safe, run_qa_seed, seed_emails


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the HomeLedger database with QA fixtures.")
    parser.add_argument(
        "--domain",
        default=os.environ.get("TEST_EMAIL_DOMAIN") or DEFAULT_DOMAIN,
        help="Email domain for the seeded accounts (defaults to TEST_EMAIL_DOMAIN).",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        default=os.environ.get("QA_SEED_RESET") == "1",
        help="Hard-delete the previously seeded graph first (defaults to QA_SEED_RESET=1).",
    )
    args = parser.parse_args()

    settings = get_settings()
    env = dict(os.environ)
    env.setdefault("APP_ENV", settings.app_env)
    assert_safe(env)

    configure_logging(settings.log_level, "plain")
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    session_factory = build_session_factory(engine)

    with session_factory() as session:
        summary = run_qa_seed(session, domain=args.domain, reset=args.reset)

    emails = seed_emails(args.domain)
    print("QA seed complete.")
    print(f"Homeowner primary:   {emails['ho_primary']}")
    print(f"Contractor approved: {emails['pro_approved']}")
    print(f"Home id {summary.home_id}, connection id {summary.connection_id}")
    print(f"All seeded accounts use the password '{SEED_PASSWORD}'.")


if __name__ == "__main__":
    main()
