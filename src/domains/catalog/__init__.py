# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Catalog lookups used during provisioning."""

from src.domains.catalog.service import Catalog, CatalogService

__all__ = ["Catalog", "CatalogService"]
