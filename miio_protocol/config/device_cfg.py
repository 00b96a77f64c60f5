# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration of a single device connection."""

from __future__ import annotations

from ..internal_types import *
from ..constants import DEFAULT_TIMEOUT_MS, DEFAULT_RETRIES, MIIO_PORT
from ..pkg_logging import logger
from ..session import Session
from ..token import Token
from .base import Config
from .token_cfg import TokenConfig
from .keyring_token import KeyringTokenConfig, DEFAULT_KEYRING_SERVICE

class DeviceConfig(Config):
  """Where to find a device and how to talk to it:

       {
         "cfg_class": "DeviceConfig",
         "data": {
           "address": "192.168.1.20",
           "token_cfg": {"cfg_class": "KeyringTokenConfig", "data": {"key": "desk-lamp"}},
           "models": ["philips.light.sread1"],
           "timeout": 1000,
           "retries": 2
         }
       }

     Every property is optional.
  """

  address: Optional[str] = None
  models: Optional[List[str]] = None
  timeout: int = DEFAULT_TIMEOUT_MS
  retries: int = DEFAULT_RETRIES
  port: int = MIIO_PORT
  _token_cfg: Optional[TokenConfig] = None

  def bake(self):
    self.address = self.get_cfg_property_str('address', None)
    self.models = self.get_cfg_property_str_list('models', None)
    self.timeout = self.get_cfg_property_int('timeout', DEFAULT_TIMEOUT_MS)
    self.retries = self.get_cfg_property_int('retries', DEFAULT_RETRIES)
    self.port = self.get_cfg_property_int('port', MIIO_PORT)
    token_cfg_data = self.get_template_cfg_property('token_cfg', None)
    if not token_cfg_data is None:
      self._token_cfg = self.get_context().load_json_data(token_cfg_data, required_type=TokenConfig)

  @classmethod
  def make_profile_data(
        cls,
        address: Optional[str],
        models: Optional[Iterable[str]]=None,
        timeout: int=DEFAULT_TIMEOUT_MS,
        retries: int=DEFAULT_RETRIES,
        keyring_key: Optional[str]=None,
        keyring_service: str=DEFAULT_KEYRING_SERVICE,
      ) -> JsonableDict:
    """Builds a DeviceConfig file document. If keyring_key is given, the token is looked up in
       the keyring under that key; the token itself is never written to the file."""
    data: JsonableDict = dict(timeout=timeout, retries=retries)
    if address is not None:
      data['address'] = address
    if models is not None:
      data['models'] = sorted(models)
    if keyring_key is not None:
      data['token_cfg'] = KeyringTokenConfig.make_file_data(dict(service=keyring_service, key=keyring_key))
    return cls.make_file_data(data)

  @property
  def token_cfg(self) -> Optional[TokenConfig]:
    return self._token_cfg

  def get_token(self) -> Optional[Token]:
    """The configured token, or None if there is none (it will then be discovered)."""
    if self._token_cfg is None:
      return None
    try:
      return self._token_cfg.get_token()
    except KeyError as e:
      logger.debug(f"No token configured: {e}")
      return None

  def create_session(self, **kwargs: Any) -> Session:
    """Creates a Session from this configuration. Keyword arguments override configured values."""
    params: Dict[str, Any] = dict(
        address=self.address,
        token=self.get_token(),
        acceptable_models=self.models,
        timeout=self.timeout,
        retries=self.retries,
        port=self.port,
      )
    params.update(kwargs)
    return Session(**params)
