# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
from common.utils.calibration import (
    create_object_points,
    field_of_view,
    find_pattern,
    to_gray,
    view_errors,
)

from common.utils.camera import (
    open_camera,
    read_frame,
)

from common.utils.image import (
    frame_format,
    imitate,
    motion_score,
    side_by_side,
)

__all__ = [
    "open_camera",
    "read_frame",
    "create_object_points",
    "find_pattern",
    "to_gray",
    "view_errors",
    "field_of_view",
    "frame_format",
    "imitate",
    "motion_score",
    "side_by_side",
]
