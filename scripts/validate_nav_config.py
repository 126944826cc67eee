#!/usr/bin/env python3
"""Validate a navigation config file and print how routes resolve.

Loads the file given on the command line (or the built-in practice sidebar
when omitted), checks the tree and alias invariants and prints the flattened
sections plus the active section for every known route as JSON.  Exits with
status 1 when the config is invalid.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from clinicnav import navigation
from clinicnav.models import InvariantViolation

logging.basicConfig(level=logging.INFO, format="%(message)s")


def _describe(config: navigation.NavConfig) -> Dict[str, Any]:
    sections: List[Dict[str, Any]] = []
    routes: Dict[str, str] = {}
    for section, top in navigation.iter_sections(config.sections):
        sections.append(
            {
                "id": section.id,
                "path": section.path,
                "topLevel": top.id,
                "hasSubmenu": section.has_submenu,
            }
        )
        routes[section.path] = navigation.resolve_active_section(
            section.path, config.aliases, config.sections
        )
    for segment in config.aliases:
        path = f"/{segment}"
        routes[path] = navigation.resolve_active_section(path, config.aliases, config.sections)
    return {"sections": sections, "aliases": config.aliases, "routes": routes}


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("config", nargs="?", help="path to a navigation config JSON file")
    args = parser.parse_args(argv)

    try:
        if args.config:
            config = navigation.load_nav_config(args.config)
        else:
            config = navigation.default_nav_config()
    except (OSError, InvariantViolation, json.JSONDecodeError) as exc:
        logging.error("Invalid navigation config: %s", exc)
        return 1

    print(json.dumps(_describe(config), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
