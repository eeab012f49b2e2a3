import logging

import structlog
from opentelemetry import trace


def add_trace_context(logger, method_name, event_dict):
    """Injects the current OTel trace and span ids so a generation's log lines can be grouped."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def service_name_adder(service: str):
    def add_service_name(logger, method_name, event_dict):
        event_dict.setdefault("service", service)
        return event_dict

    return add_service_name


def configure_logging(json_logs: bool = False, log_level: str = "INFO", service: str = "QuickImage"):
    """JSON lines in production, coloured console output locally."""

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        service_name_adder(service),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(log_level.upper())),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Provider clients log their own request events; httpx would repeat each one
    logging.getLogger("httpx").setLevel(logging.WARNING)

    # Route uvicorn through the same output
    logging.getLogger("uvicorn.access").handlers = []
    logging.getLogger("uvicorn.error").handlers = []
