"""CI gate: assert the Alembic migration graph has exactly the expected head.

A second migration with down_revision = None creates a parallel root, and
`alembic upgrade head` then fails with "multiple heads". New migrations must
chain off the current head.

Update EXPECTED_HEADS when a migration is added.

Usage:
  python .github/scripts/ci_alembic_heads_check.py
"""
from __future__ import annotations

import sys
from pathlib import Path

# Alembic needs the api directory on sys.path and the alembic.ini location.
api_root = Path(__file__).resolve().parents[2] / "apps" / "api"
sys.path.insert(0, str(api_root))

from alembic.config import Config
from alembic.script import ScriptDirectory

EXPECTED_HEADS = {"a1b2c3d4e5f6"}
MAX_ROOTS = 1


def main() -> int:
    cfg = Config(str(api_root / "alembic.ini"))
    cfg.set_main_option("script_location", str(api_root / "alembic"))

    script = ScriptDirectory.from_config(cfg)
    heads = set(script.get_heads())

    if heads != EXPECTED_HEADS:
        print("MIGRATION HEAD CHECK FAILED")
        print(f"  Expected heads: {sorted(EXPECTED_HEADS)}")
        print(f"  Actual heads:   {sorted(heads)}")
        for h in sorted(heads - EXPECTED_HEADS):
            print(f"  unexpected head: {h}")
        for h in sorted(EXPECTED_HEADS - heads):
            print(f"  missing head: {h}")
        print("  Fix: chain the new migration off the current head, then update EXPECTED_HEADS.")
        return 1

    revisions = list(script.walk_revisions())
    roots = [r.revision for r in revisions if r.down_revision is None]
    if len(roots) > MAX_ROOTS:
        print("MIGRATION ROOT CHECK FAILED")
        print(f"  Expected at most {MAX_ROOTS} root, found {len(roots)}: {sorted(roots)}")
        return 1

    print(f"Migration integrity check: OK ({len(heads)} head, {len(roots)} root, {len(revisions)} total)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
