# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Pismo: a sandboxed Linux userland for restricted, non-root hosts."""

__version__ = "0.3.0"
