"""
Utils Module - Infrastructure Utilities
=======================================

Modules:
    logger: Structured JSON logging with rotation and conversation records
    metrics: Prometheus metrics for dispatches, retries and image archiving
    observability: Logger and metrics bundle passed to every component
    dispatch_context: ContextVar carrying the current dispatch for log enrichment
    http_logger: Optional httpx request/response logging hooks
    client_factory: httpx and AsyncOpenAI client creation
    byte_fanout: Single-producer, multi-reader byte pipe with backpressure

Example:
    Logging inside a dispatch::

        from utils.dispatch_context import DispatchContext, set_dispatch_context

        set_dispatch_context(DispatchContext(channel_id="123"))
        obs.logger.info("Processing message")  # record carries dispatch_id, channel, ...
"""
