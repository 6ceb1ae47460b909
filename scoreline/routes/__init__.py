from scoreline.routes.core import router as core_router
from scoreline.routes.predictions import router as predictions_router

__all__ = ["core_router", "predictions_router"]
