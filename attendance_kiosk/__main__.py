"""Allow ``python -m attendance_kiosk`` to launch the kiosk."""

from __future__ import annotations

import sys

from attendance_kiosk import run


def main() -> None:
    raise SystemExit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
