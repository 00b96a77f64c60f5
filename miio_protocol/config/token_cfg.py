# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration support for retrieving a device token."""

from __future__ import annotations

from ..internal_types import *
from ..util import full_type
from ..token import Token
from .base import Config

class TokenConfig(Config):
  """Base class for configurations that know where to find a device token."""

  _default_token_cfg: Optional[TokenConfig] = None

  def bake(self):
    default_cfg_data = self.get_template_cfg_property('default_token_cfg', None)
    if not default_cfg_data is None:
      self._default_token_cfg = self.get_context().load_json_data(default_cfg_data, required_type=TokenConfig)

  def get_token(self) -> Token:
    """Returns the token. Raises KeyError if it does not exist."""
    raise NotImplementedError(f"{full_type(self)} does not implement get_token")

  def set_token(self, token: Token):
    raise NotImplementedError(f"{full_type(self)} does not implement set_token")

  def delete_token(self):
    raise NotImplementedError(f"{full_type(self)} does not implement delete_token")

  def token_exists(self) -> bool:
    try:
      self.get_token()
    except KeyError:
      return False

    return True

class LiteralTokenConfig(TokenConfig):
  """A token given directly in the configuration, as 32 hex digits:

       {"cfg_class": "LiteralTokenConfig", "data": {"token": "${env:MIIO_TOKEN}"}}
  """

  _token: Optional[Token] = None

  def bake(self):
    super().bake()
    self._token = Token(self.get_cfg_property_str('token'))

  def get_token(self) -> Token:
    assert not self._token is None
    return self._token
