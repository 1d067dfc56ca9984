"""Langfuse OTel tracing for conversation turns.

Every user turn becomes one ``turn`` trace with a child span per step:
``listen``, ``transcribe``, ``dispatch`` and, when the reply has audio,
``speak``. Spans go through the global OpenTelemetry tracer provider, which
``setup_langfuse_tracer`` points at Langfuse's OTLP endpoint. Without it the
API hands out no-op spans and tracing costs nothing.
"""

import base64
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from src.core.logger import logger
from src.core.settings import settings

TRACER_NAME = "jarvis.turns"

_langfuse_tracer_provider: Optional[TracerProvider] = None


def _normalize_langfuse_host() -> Optional[str]:
    host = settings.langfuse.LANGFUSE_HOST or settings.langfuse.LANGFUSE_BASE_URL
    if not host:
        return None
    return host.rstrip("/")


def setup_langfuse_tracer() -> Optional[TracerProvider]:
    """Install a tracer provider that exports turn traces to Langfuse."""
    global _langfuse_tracer_provider

    if not settings.langfuse.LANGFUSE_ENABLED:
        return None
    if _langfuse_tracer_provider is not None:
        return _langfuse_tracer_provider

    host = _normalize_langfuse_host()
    public_key = settings.langfuse.LANGFUSE_PUBLIC_KEY
    secret_key = settings.langfuse.LANGFUSE_SECRET_KEY
    if not host or not public_key or not secret_key:
        logger.warning(
            "Langfuse tracing enabled but LANGFUSE_HOST/LANGFUSE_PUBLIC_KEY/LANGFUSE_SECRET_KEY are missing"
        )
        return None

    try:
        auth = base64.b64encode(f"{public_key}:{secret_key}".encode("utf-8")).decode("utf-8")
        span_exporter = OTLPSpanExporter(
            endpoint=f"{host}/api/public/otel/v1/traces",
            headers={"Authorization": f"Basic {auth}"},
        )
        tracer_provider = TracerProvider(
            resource=Resource.create(
                {
                    SERVICE_NAME: "jarvis",
                    SERVICE_VERSION: "0.1.0",
                    "deployment.environment": settings.langfuse.LANGFUSE_ENVIRONMENT,
                }
            )
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        trace.set_tracer_provider(tracer_provider)
        _langfuse_tracer_provider = tracer_provider
        logger.info("Langfuse OTEL tracing configured")
        return tracer_provider
    except Exception as exc:
        logger.warning(f"Failed to set up Langfuse tracing: {exc}")
        return None


def flush_langfuse_tracer() -> None:
    if _langfuse_tracer_provider is None:
        return
    try:
        _langfuse_tracer_provider.force_flush()
    except Exception as exc:
        logger.warning(f"Failed to flush Langfuse traces: {exc}")


class TraceStep:
    """One child span of a turn, e.g. ``transcribe``."""

    def __init__(self, span: Any):
        self._span = span

    def set(self, key: str, value: Any) -> None:
        if value is not None:
            self._span.set_attribute(key, value)

    def observe(self, observation_input: Optional[str] = None, observation_output: Optional[str] = None) -> None:
        if observation_input is not None:
            self._span.set_attribute("input", observation_input)
            self._span.set_attribute("langfuse.observation.input", observation_input)
        if observation_output is not None:
            self._span.set_attribute("output", observation_output)
            self._span.set_attribute("langfuse.observation.output", observation_output)


class TurnTrace:
    """The root ``turn`` span. Ends exactly once, with the turn's outcome."""

    def __init__(self, tracer: Any, session_id: str):
        self.turn_id = uuid.uuid4().hex
        self._tracer = tracer
        self._started = time.monotonic()
        self._ended = False

        # every turn is its own trace, never a child of whatever is current
        root_context = trace.set_span_in_context(trace.INVALID_SPAN)
        self._span = tracer.start_span("turn", context=root_context)
        self._context = trace.set_span_in_context(self._span)

        for key, value in {
            "session_id": session_id,
            "turn_id": self.turn_id,
            "session.id": session_id,
            "langfuse.session.id": session_id,
            "langfuse.trace.name": "turn",
            "langfuse.trace.metadata.turn_id": self.turn_id,
        }.items():
            self._span.set_attribute(key, value)

    @property
    def trace_id(self) -> str:
        return trace.format_trace_id(self._span.get_span_context().trace_id)

    @property
    def ended(self) -> bool:
        return self._ended

    def set_input(self, text: str) -> None:
        self._span.set_attribute("langfuse.trace.input", text)

    def set_output(self, text: str) -> None:
        self._span.set_attribute("langfuse.trace.output", text)

    @contextmanager
    def step(self, name: str) -> Iterator[TraceStep]:
        span = self._tracer.start_span(name, context=self._context)
        started = time.monotonic()
        try:
            yield TraceStep(span)
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
        finally:
            span.set_attribute("duration_ms", _elapsed_ms(started))
            span.end()

    def end(self, outcome: str) -> None:
        if self._ended:
            return
        self._ended = True
        self._span.set_attribute("outcome", outcome)
        self._span.set_attribute("langfuse.trace.metadata.outcome", outcome)
        self._span.set_attribute("duration_ms", _elapsed_ms(self._started))
        self._span.end()


class TurnTracer:
    """Hands out one ``TurnTrace`` per user turn of a session."""

    def __init__(self, session_id: str, tracer: Optional[Any] = None):
        self._session_id = session_id
        self._tracer = tracer or trace.get_tracer(TRACER_NAME)

    def start_turn(self) -> TurnTrace:
        return TurnTrace(self._tracer, self._session_id)


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000.0, 1)
