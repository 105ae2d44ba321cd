# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Stream implementations of the eISCP protocol.
"""

from .frame_stream import FrameStream
