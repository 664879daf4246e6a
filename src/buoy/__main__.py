"""Allow ``python -m buoy`` to start the server."""

from .main import main

raise SystemExit(main())  # pragma: no cover
