# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration support for keeping device tokens in the system keyring."""

from __future__ import annotations

import keyring

from ..internal_types import *
from ..token import Token
from .token_cfg import TokenConfig

DEFAULT_KEYRING_SERVICE = "miio_protocol"

class KeyringTokenConfig(TokenConfig):
  """A token stored in the system keyring under (service, key). key is typically the device's
     address or name:

       {"cfg_class": "KeyringTokenConfig", "data": {"service": "miio_protocol", "key": "desk-lamp"}}
  """

  _keyring_service: Optional[str] = None
  _keyring_key: Optional[str] = None

  def __init__(self, service: Optional[str]=None, key: Optional[str]=None):
    super().__init__()
    self._keyring_service = service
    self._keyring_key = key

  def bake(self):
    super().bake()
    self._keyring_service = self.get_cfg_property_str('service', DEFAULT_KEYRING_SERVICE)
    self._keyring_key = self.get_cfg_property_str('key')

  def get_token(self) -> Token:
    assert not self._keyring_service is None
    assert not self._keyring_key is None
    result = keyring.get_password(self._keyring_service, self._keyring_key)
    if result is None:
      if self._default_token_cfg is None:
        raise KeyError(f"KeyringTokenConfig: service '{self._keyring_service}', key name '{self._keyring_key}' does not exist")
      else:
        try:
          return self._default_token_cfg.get_token()
        except KeyError as e:
          raise KeyError(f"KeyringTokenConfig: service '{self._keyring_service}', key name '{self._keyring_key}' does not exist") from e

    return Token(result)

  def set_token(self, token: Token):
    assert not self._keyring_service is None
    assert not self._keyring_key is None
    keyring.set_password(self._keyring_service, self._keyring_key, token.hex)

  def delete_token(self):
    assert not self._keyring_service is None
    assert not self._keyring_key is None
    keyring.delete_password(self._keyring_service, self._keyring_key)
