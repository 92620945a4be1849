from .log import setup_logging
