from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path

import yaml

from addin_sso.config import SsoConfig
from addin_sso.configure import configure_sso_application
from addin_sso.errors import SsoConfigurationError


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="configure-sso",
        description="Register an Azure AD application for Office Add-in single sign-on",
    )
    parser.add_argument("--manifest", required=True, help="Path to the add-in manifest XML")
    parser.add_argument("--port", required=True, help="Port the add-in dev server listens on")
    parser.add_argument("--config", help="Path to an optional YAML configuration file")
    parser.add_argument("--json", action="store_true", help="Print the registered application as JSON")
    parser.add_argument("--verbose", action="store_true", help="Log every command that runs")
    args = parser.parse_args(argv)
    if not args.port.isdigit():
        parser.error("--port must be numeric")
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    try:
        config = SsoConfig.load(Path(args.config) if args.config else None)
        record = asyncio.run(configure_sso_application(Path(args.manifest), args.port, config=config))
    except (SsoConfigurationError, OSError, ValueError, yaml.YAMLError) as exc:
        logging.getLogger("addin_sso").error("Error: %s", exc)
        return 1

    if record is not None and args.json:
        payload = asdict(record)
        payload.pop("secret", None)
        payload.pop("raw", None)
        print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
