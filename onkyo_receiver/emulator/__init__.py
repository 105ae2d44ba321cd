# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Onkyo receiver emulator.

Provides a simple emulation of an Onkyo receiver on TCP/IP, answering
eISCP queries and UDP discovery.
"""

from .emulator_impl import (
    OnkyoReceiverEmulator,
    DEFAULT_STATE,
  )
