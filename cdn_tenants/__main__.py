# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Allow running the CLI with ``python -m cdn_tenants``."""

import sys

from cdn_tenants.cli import main

sys.exit(main())
