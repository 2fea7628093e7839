# telemetry.py: Request and query tracing for the vault
# Spans go to an OTLP collector only when OTEL_EXPORTER_OTLP_ENDPOINT is set.
import os
import logging

logger = logging.getLogger("keyvault.telemetry")

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "keyvault-api")
SERVICE_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")


def setup_telemetry(app=None, engine=None):
    """Trace vault routes (except /health) and the SQL behind them.

    Returns the tracer provider, or None when tracing stays off.
    """
    if not OTLP_ENDPOINT:
        logger.info("Tracing off: no OTLP endpoint configured")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME as RES_SVC_NAME
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        resource = Resource.create({
            RES_SVC_NAME: SERVICE_NAME,
            "service.version": SERVICE_VERSION,
            "deployment.environment": ENVIRONMENT,
        })

        provider = TracerProvider(resource=resource)
        exporter = OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)

        if app is not None:
            try:
                from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
                FastAPIInstrumentor.instrument_app(
                    app,
                    excluded_urls="health",
                    tracer_provider=provider,
                )
                logger.info("Vault routes traced")
            except ImportError:
                logger.warning("opentelemetry-instrumentation-fastapi not installed")

        if engine is not None:
            try:
                from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
                # Async engines are instrumented through their sync core
                SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)
                logger.info("Vault store queries traced")
            except ImportError:
                logger.warning("opentelemetry-instrumentation-sqlalchemy not installed")

        logger.info("Tracing exported to %s as %s", OTLP_ENDPOINT, SERVICE_NAME)
        return provider

    except ImportError:
        logger.info("Tracing off: install the otel extra to enable it")
        return None
    except Exception as e:
        logger.error("Tracing setup failed, continuing without spans: %s", e)
        return None
