"""Run the gateway with uvicorn: ``python -m ptgen_gateway``."""

import uvicorn

from ptgen_gateway.config import configure_logging, settings


def main() -> None:
    configure_logging()
    uvicorn.run(
        "ptgen_gateway.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
