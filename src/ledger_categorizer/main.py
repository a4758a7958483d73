import os

import uvicorn

from ledger_categorizer.logger import get_logging_config


def main() -> None:
    uvicorn.run(
        "ledger_categorizer.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=get_logging_config(),
    )


if __name__ == "__main__":
    main()
