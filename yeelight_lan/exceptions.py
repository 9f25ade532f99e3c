#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from __future__ import annotations

import asyncio

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .wire import ErrorInfo, CommandResult

class YeelightError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class DialError(YeelightError):
  """The TCP connection to an appliance could not be established."""
  pass

class CommandTimeoutError(YeelightError, asyncio.TimeoutError):
  """No result arrived for a command within the timeout."""
  pass

class DecodeError(YeelightError):
  """A line received from an appliance is not a valid message."""
  pass

class ConnectionClosedError(YeelightError):
  """The connection to the appliance was closed while (or before) a command was outstanding."""
  pass

class NotFoundError(YeelightError):
  """Discovery received no reply within its timeout."""
  pass

class ApplianceError(YeelightError):
  """The appliance rejected a command and returned an error object."""

  error_info: ErrorInfo
  """The code and message reported by the appliance."""

  result: Optional[CommandResult]
  """The complete result that carried the error, if any."""

  def __init__(self, error_info: ErrorInfo, result: Optional[CommandResult]=None):
    super().__init__(f"Appliance error {error_info.code}: {error_info.message}")
    self.error_info = error_info
    self.result = result

  @property
  def code(self) -> int:
    return self.error_info.code

  @property
  def message(self) -> str:
    return self.error_info.message
