from __future__ import annotations

import uvicorn

from .core.config import settings


def main() -> None:
    uvicorn.run("toolcrib.main:app", host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    main()
