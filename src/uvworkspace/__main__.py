"""Allow ``python -m uvworkspace``."""

from __future__ import annotations

from uvworkspace.cli import main

if __name__ == "__main__":  # pragma: no cover - manual execution entrypoint
    main()
