"""Module entry point: python -m doorplate_track ..."""

from __future__ import annotations

from doorplate_track.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
