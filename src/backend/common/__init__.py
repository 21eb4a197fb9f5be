# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
"""Shared building blocks for the calibration services."""

__version__ = "0.1.0"
