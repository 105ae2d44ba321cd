# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Package-wide logger"""

import logging

logger = logging.getLogger("onkyo_receiver")
"""The logger used by all modules in this package."""
