import inspect
import logging
import os

from pythonjsonlogger.json import JsonFormatter

LOGGER_NAME = "dialogue_foundry"


def _caller_location(frame) -> str:
    """Return "file:line" for the frame that called into the adapter."""
    if frame and frame.f_back:
        caller = frame.f_back
        return f"{caller.f_code.co_filename}:{caller.f_lineno}"
    return "unknown:0"


def mask_email(email: str) -> str:
    """Mask an email address for logging, keeping only the first three characters."""
    return email[:3] + "***" if email else ""


class Logger(logging.LoggerAdapter):
    _instance = None
    _initialized = False

    def __new__(cls) -> "Logger":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if Logger._initialized:
            return

        log_level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(message)s",
            rename_fields={"asctime": "@timestamp", "levelname": "log_level"},
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(log_level)
        logger.addHandler(handler)
        logger.propagate = False

        super().__init__(logger)
        Logger._initialized = True

    def error(self, msg: str, *args, **kwargs) -> None:
        """Log at ERROR, tagging the record with the caller's file and line."""
        kwargs["file"] = _caller_location(inspect.currentframe())
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, exc_info: bool = True, **kwargs) -> None:
        """Log at ERROR with traceback, tagging the record with the caller's file and line."""
        kwargs["file"] = _caller_location(inspect.currentframe())
        self.log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        # Everything that isn't a logging keyword becomes a JSON field via `extra`
        passthrough = {}
        for key in ("exc_info", "stack_info", "stacklevel"):
            value = kwargs.pop(key, None)
            if value is not None:
                passthrough[key] = value

        if kwargs:
            passthrough["extra"] = kwargs
        return msg, passthrough


logger = Logger()
