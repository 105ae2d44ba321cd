#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class OnkyoReceiverError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class TransportError(OnkyoReceiverError):
  """A socket-level failure on a receiver connection.

  Delivered to connection error listeners; never raised synchronously from connect().
  """
  pass

class NotConnectedError(TransportError):
  """A command was sent while the receiver connection was not established."""
  pass

class DiscoveryFailure(OnkyoReceiverError):
  """No receiver answered discovery within the discovery window."""
  pass

class ConnectionTimeoutError(OnkyoReceiverError):
  """wait_for_connect() gave up. The underlying connect attempt is not cancelled."""
  pass

class QueryFailure(OnkyoReceiverError):
  """A state poll step failed."""
  pass

class DuplicateConnectionError(OnkyoReceiverError):
  """A connection already exists for the physical receiver identity."""
  pass

class UnknownCommandError(OnkyoReceiverError):
  """The symbolic command name is not in the command table."""
  pass

class ConfigError(OnkyoReceiverError):
  """Invalid receiver configuration."""
  pass
