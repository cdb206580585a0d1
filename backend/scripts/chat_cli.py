#!/usr/bin/env python3
"""
scripts/chat_cli.py
-------------------
Hold a consultation from the terminal, using the same router as the API.

Flow:
  1. The chosen specialist greets you
  2. Type symptoms; empty line or Ctrl-D quits
  3. Say "that's all" (or "nothing else", "done", ...) to close
  4. The prescription report is printed

Usage:
    python scripts/chat_cli.py
    python scripts/chat_cli.py --specialty eye
    python scripts/chat_cli.py --offline        # never call Gemini
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import get_settings  # noqa: E402  (path set above)
from app.conversation import ConsultationSession, ConsultationState  # noqa: E402
from app.dependencies import get_catalog, get_generator  # noqa: E402
from app.dialogue import DialogueRouter, stable_pick  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Console consultation with MedRoute")
    parser.add_argument(
        "--specialty", default="general", help="Specialist key to start with"
    )
    parser.add_argument(
        "--offline", action="store_true", help="Use fallback replies only"
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Show router log output"
    )
    return parser.parse_args()


async def _run(session: ConsultationSession) -> None:
    print(f"{session.profile.title}: {session.start()}")

    while session.state is not ConsultationState.CLOSING:
        try:
            message = input("You: ").strip()
        except EOFError:
            print()
            return
        if not message:
            return

        decision = await session.send(message)
        print(f"{session.profile.title}: {decision.message}")

        if decision.redirect_to:
            answer = input(f"Switch to {decision.redirect_to}? [y/N] ").strip().lower()
            if answer in ("y", "yes"):
                greeting = session.switch_specialist(decision.redirect_to)
                print(f"{session.profile.title}: {greeting}")

    settings = get_settings()
    print()
    print(
        session.build_report(
            clinic_name=settings.clinic_name,
            emergency_number=settings.emergency_number,
        )
    )


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    router = DialogueRouter(
        get_catalog(),
        None if args.offline else get_generator(),
        policy=settings.referral_policy,
        pick=stable_pick(settings.fallback_seed),
        language=settings.response_language,
    )
    asyncio.run(_run(ConsultationSession(router, args.specialty)))


if __name__ == "__main__":
    main()
