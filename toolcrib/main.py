from prometheus_fastapi_instrumentator import Instrumentator

from toolcrib import create_app
from toolcrib.core.config import settings
from toolcrib.core.logging import configure_logging

configure_logging(settings.LOG_LEVEL, service=settings.APP_NAME)
app = create_app(settings=settings)
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, include_in_schema=False)
