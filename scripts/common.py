"""
Shared guard for maintenance scripts: refuse to touch a production database
unless --force is given.
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def parse_args(description: str, argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--force", action="store_true", help="allow running with ENVIRONMENT=production")
    return parser.parse_args(argv)


def refuse_production(force: bool) -> None:
    from opsconsole.config import get_settings

    settings = get_settings()
    if settings.is_production and not force:
        print("Refusing to run against a production environment. Re-run with --force if you mean it.")
        sys.exit(1)
