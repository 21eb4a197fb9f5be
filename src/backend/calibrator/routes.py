# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel

from calibrator.manager import CalibrationManager
from calibrator.session import CalibrationStatus


class ToggleResponse(BaseModel):
    active: bool


router = APIRouter()


def _manager(request: Request) -> CalibrationManager:
    manager = getattr(request.app.state, "manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="calibration not started")
    return manager


@router.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "calibrator"}


@router.get("/status", response_model=CalibrationStatus)
async def status(request: Request) -> CalibrationStatus:
    """Current motion score, sample count, reprojection errors and intrinsics."""
    return await _manager(request).status()


@router.post("/toggle", response_model=ToggleResponse)
async def toggle(request: Request) -> ToggleResponse:
    """Pause or resume automatic sample capture."""
    return ToggleResponse(active=await _manager(request).toggle())


@router.get("/frame/undistorted.jpg")
async def undistorted_frame(request: Request) -> Response:
    """Latest undistorted frame; 404 until the first sample is admitted."""
    payload = await _manager(request).undistorted_jpeg()
    if payload is None:
        raise HTTPException(status_code=404, detail="no undistorted frame yet")
    return Response(content=payload, media_type="image/jpeg")
