# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT


class ConfigError(ValueError):
    """Pattern settings are malformed. Raised at startup only."""


class FormatMismatch(ValueError):
    """A frame does not match the shape/dtype of the primed buffers."""

    def __init__(
        self, expected: tuple[tuple[int, ...], str], actual: tuple[tuple[int, ...], str]
    ) -> None:
        super().__init__(f"expected frame {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class PersistenceFailure(OSError):
    """Writing the calibration model to durable storage failed."""
