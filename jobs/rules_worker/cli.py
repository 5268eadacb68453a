"""CLI entry point for the rules worker."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import signal

from common.config import get_settings
from common.db import dispose_engines
from rules_engine.service import build_rules_engine

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    # Silenciar SQL verboso
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    settings = get_settings()
    p = argparse.ArgumentParser(description="Rules engine worker (threshold rules -> alerts)")
    p.add_argument("--poll-seconds", type=float, default=settings.poll_seconds)
    p.add_argument("--workers", type=int, default=settings.parallel_workers,
                   help="rules evaluated in parallel per cycle (1 = sequential)")
    p.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = p.parse_args(argv)

    settings = dataclasses.replace(
        settings,
        poll_seconds=args.poll_seconds,
        parallel_workers=max(1, args.workers),
    )
    engine = build_rules_engine(settings)
    scheduler = engine.scheduler

    logger.info("Rules worker started")
    logger.info(
        "Config: poll=%.1fs workers=%d publisher=%s default_cooldown=%ds",
        settings.poll_seconds, settings.parallel_workers, settings.publisher,
        settings.default_cooldown_seconds,
    )

    engine.publisher.start()
    try:
        if args.once:
            report = scheduler.run_cycle()
            return 1 if report.error else 0

        def _on_signal(signum, _frame):
            logger.info("Signal %s received, stopping after current rule...", signum)
            scheduler.request_stop()

        # Ctrl+C y SIGTERM paran entre reglas, nunca a mitad de un INSERT.
        previous = {sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            scheduler.run_forever()
        finally:
            for sig, handler in previous.items():
                if handler is not None:
                    signal.signal(sig, handler)
        return 0
    finally:
        engine.publisher.close()
        dispose_engines()
        logger.info("Rules worker exited. %s", scheduler.stats.to_dict())


if __name__ == "__main__":
    raise SystemExit(main())
