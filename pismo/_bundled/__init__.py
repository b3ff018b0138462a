# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Static resources bundled into the wheel for PyPI distribution.

- ``scripts/setup-alpine.sh``: first-boot script for the rootfs
- ``bin/``: sandbox tool binaries, added at packaging time per target
"""
