#!/usr/bin/env python3
"""
Sync the Heroku app's add-ons into the local addons table.

Usage:
  python scripts/sync_addons.py
  python scripts/sync_addons.py --app my-heroku-app
"""
import argparse
import json
import sys

from core.config import Settings
from core.container import container
from core.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Sync Heroku add-ons")
    parser.add_argument("--app", help="Heroku app name (defaults to HEROKU_APP_NAME)")
    args = parser.parse_args()

    configure_logging(Settings(log_format="console"))
    container.database().startup()
    try:
        result = container.addon_sync().sync(args.app)
    finally:
        container.database().shutdown()

    print(json.dumps(result.to_dict(), indent=2))
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
