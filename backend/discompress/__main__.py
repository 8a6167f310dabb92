"""Run the API with uvicorn: ``python -m discompress``."""

import uvicorn

from discompress.core.config import settings


def main() -> None:
    uvicorn.run(
        "discompress.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
