from __future__ import annotations

import argparse
import json
import logging
import sys

from dealerdesk.app.cache import QueryCache
from dealerdesk.app.maintenance import TRIGGERS, MaintenanceTriggers
from dealerdesk.app.notifier import LoggingNotifier
from dealerdesk.config.settings import Settings
from dealerdesk.main import build_gateway


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fire one server-side maintenance procedure and print the outcome as JSON."
    )
    parser.add_argument(
        "--action",
        choices=sorted(TRIGGERS),
        required=True,
        help="Maintenance trigger to run.",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default="",
        help="PostgreSQL connection URL. When omitted the REST settings from the environment are used.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    return parser.parse_args(argv)


def run(action: str, *, database_url: str = "") -> int:
    settings = Settings()
    if database_url:
        settings = settings.model_copy(
            update={"gateway_backend": "postgres", "database_url": database_url}
        )
    triggers = MaintenanceTriggers(
        gateway=build_gateway(settings),
        cache=QueryCache(),
        notifier=LoggingNotifier(history=settings.notification_history),
    )
    result = triggers.run(action)
    print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    sys.exit(run(args.action, database_url=args.database_url))


if __name__ == "__main__":
    main()
