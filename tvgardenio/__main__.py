"""Run the addon server with ``python -m tvgardenio``."""

from __future__ import annotations

import uvicorn

from app.config import settings


def main() -> None:
    """Serve ``app.main:app`` on the configured host and port."""

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        proxy_headers=True,
        forwarded_allow_ips="*",
        log_level="debug" if settings.dev_logging else "info",
        reload=settings.environment == "development",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
