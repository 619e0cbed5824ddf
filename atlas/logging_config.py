# atlas/logging_config.py

import logging
import sys

from atlas.config import settings

# Module-level logger so every module can import it.
logger = logging.getLogger("atlas")

def setup_logging():
    """
    Configures the root logger for the application.
    This function should be called ONLY ONCE at startup in main.py.
    """
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - [%(levelname)s] - %(message)s",
        stream=sys.stdout,
    )
    # Silence noisy libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
