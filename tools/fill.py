"""Run the test suite and write the collected escrow fixture cases.

Usage: python tools/fill.py [OUTPUT_DIR] [extra pytest args...]
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
DEFAULT_OUT = ROOT / "fixtures"


def main(argv: list[str]) -> int:
    out = Path(argv[0]) if argv and not argv[0].startswith("-") else DEFAULT_OUT
    extra = argv[1:] if argv and not argv[0].startswith("-") else argv

    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(ROOT / "src"), env.get("PYTHONPATH")) if p
    )

    cmd = [
        sys.executable,
        "-m",
        "pytest",
        str(ROOT / "tests"),
        "-q",
        "--output",
        str(out),
        *extra,
    ]
    print("Running:", " ".join(cmd))
    code = subprocess.call(cmd, env=env, cwd=str(ROOT))
    if code == 0:
        print(f"Fixtures written to {out}; check them with: job-escrow consume {out}")
    return code


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
