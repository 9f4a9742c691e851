"""Run the grading worker and leaderboard updater as a standalone process."""

import logging
import time

from codearena.config import settings
from codearena.core.database import Database
from codearena.runtime import Runtime


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    runtime = Runtime.build(settings, Database.from_settings(settings))
    runtime.start(run_worker=True)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        runtime.stop()


if __name__ == "__main__":
    main()
