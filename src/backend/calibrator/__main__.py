# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT

"""CLI entry point: ``python -m calibrator``."""

from calibrator.cli import main

if __name__ == "__main__":
    main()
