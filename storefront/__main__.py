"""Run the storefront service: ``python -m storefront``."""

from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from storefront.app import create_app
from storefront.config import Settings


def main() -> None:
    load_dotenv()
    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
