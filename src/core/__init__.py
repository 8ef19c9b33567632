# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for the tenancy back office.

This package contains shared core concerns:
- config: Application configuration and settings
"""
