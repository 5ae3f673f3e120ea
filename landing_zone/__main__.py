"""Module entrypoint for running a provisioning run."""

from __future__ import annotations

from landing_zone.cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
