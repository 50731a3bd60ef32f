"""
PDF Generator Service entrypoint - runs uvicorn.

uvicorn handles SIGINT/SIGTERM and runs the app's shutdown hook, which
closes Chromium before the process exits.
"""

import uvicorn

from .config import get_settings


def main() -> None:
    """Run the PDF generator server."""
    settings = get_settings()

    uvicorn.run(
        "pdf_generator_service.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
