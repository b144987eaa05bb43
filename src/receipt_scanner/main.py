import os

import uvicorn

from receipt_scanner.app import app
from receipt_scanner.logger import get_logging_config


def run() -> None:
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_config=get_logging_config(),
    )


if __name__ == "__main__":
    run()
