import logging
import sys
from typing import Any

DEFAULT_TRACE_LEVEL_NUM = 5  # NOTE: MUST be lower than DEBUG which is 10

logger = logging.getLogger("django_async_ssr")
actual_trace_level_num = -1


def setup_logging() -> None:
    # Check if "TRACE" level was already defined. And if so, use its log level.
    # See https://docs.python.org/3/howto/logging.html#custom-levels
    global actual_trace_level_num  # noqa: PLW0603
    log_levels = _get_log_levels()

    if "TRACE" in log_levels:
        actual_trace_level_num = log_levels["TRACE"]
    else:
        actual_trace_level_num = DEFAULT_TRACE_LEVEL_NUM
        logging.addLevelName(actual_trace_level_num, "TRACE")


def _get_log_levels() -> dict[str, int]:
    # Use official API if possible
    if sys.version_info >= (3, 11):
        return logging.getLevelNamesMapping()
    return logging._nameToLevel.copy()


def trace(message: str, *args: Any, **kwargs: Any) -> None:
    """
    TRACE level logger.

    To display TRACE logs, set the logging level to 5.

    Example:
    ```py
    LOGGING = {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "django_async_ssr": {
                "level": 5,
                "handlers": ["console"],
            },
        },
    }
    ```

    """
    if actual_trace_level_num == -1:
        setup_logging()
    if logger.isEnabledFor(actual_trace_level_num):
        logger.log(actual_trace_level_num, message, *args, **kwargs)


def trace_node_msg(
    action: str,
    node_type: str,
    node_id: str,
    msg: str = "",
) -> None:
    """
    TRACE level logger with opinionated format for tracing changes to the boundary tree.
    Formats messages like so:

    `"CREATE NODE: 'suspense' ID: a1b2c3 ...Done!"`
    """
    full_msg = f"{action} NODE: '{node_type}' ID: {node_id} {msg}"

    trace(full_msg.strip())


def trace_render_msg(
    action: str,
    render_id: str,
    extra: str = "",
) -> None:
    """
    TRACE level logger for the lifecycle of a single render call.
    Formats messages like so:

    `"CYCLE_START RENDER: a1b2c3 awaiting=2"`
    """
    full_msg = f"{action} RENDER: {render_id} {extra}"

    trace(full_msg.strip())
