# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator, Callable
from typing import AsyncContextManager, Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from common import __version__
from common.config import config
from calibrator.manager import CalibrationManager
from calibrator.routes import router

logger = logging.getLogger(__name__)


def create_lifespan(
    start_processing: bool,
) -> Callable[[FastAPI], AsyncContextManager[None]]:
    """Create the lifespan that opens the camera and runs the gate."""

    @asynccontextmanager
    async def lifespan_context(app: FastAPI) -> AsyncIterator[None]:
        manager: Optional[CalibrationManager] = getattr(app.state, "manager", None)
        if start_processing and manager is not None:
            await manager.start()
            logger.info("Calibration processing started")
        try:
            yield
        finally:
            if start_processing and manager is not None:
                await manager.stop()

    return lifespan_context


def create_app(
    manager: Optional[CalibrationManager] = None,
    start_processing: bool = True,
) -> FastAPI:
    """App factory to avoid import-time side effects in tests.

    Args:
        manager: Calibration manager serving the routes. Without one the
            status routes answer 503.
        start_processing: Open the camera and process frames for the
            lifetime of the app.
    """
    app = FastAPI(
        title="Calibration Service",
        version=__version__,
        description=(
            "Camera auto-calibration: samples still frames showing the "
            "calibration pattern, refines the lens model and serves the "
            "undistorted view."
        ),
        lifespan=create_lifespan(start_processing),
    )
    app.state.manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app
