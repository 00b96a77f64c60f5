# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration context.

Holds the variables available to ${name} substitution, tracks which file is being loaded,
and locates named device profiles. A device profile is a DeviceConfig file stored as

    <config dir>/devices/<name>.json

where the config dir is $MIIO_CONFIG_DIR, or ~/.config/miio_protocol if that is not set.
"""

from __future__ import annotations

import os
import re
import json
import importlib
from collections import UserDict
from copy import deepcopy
from string import Template

from ..internal_types import *
from ..version import __version__
from ..pkg_logging import logger
from ..util import full_name_of_type, full_type

if TYPE_CHECKING:
  from .base import Config
  from .device_cfg import DeviceConfig

CONFIG_DIR_ENV_VAR = "MIIO_CONFIG_DIR"
DEFAULT_CONFIG_DIR = "~/.config/miio_protocol"

_DEVICE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

_Config = TypeVar('_Config', bound='Config')

class ConfigTemplate(Template):
  """Allows a single ":" in variable names, as in ${env:HOME}."""
  idpattern = r"(?a:[_a-z][_a-z0-9]*(?::[_a-z0-9]+)?)"

def parse_version(version_s: Jsonable) -> Tuple[int, ...]:
  if not isinstance(version_s, str):
    raise ValueError(f"ConfigContext: expected str version, got {full_type(version_s)}")
  try:
    return tuple(int(x) for x in version_s.split('.'))
  except ValueError as e:
    raise ValueError(f"ConfigContext: malformed version {version_s!r}") from e

class ConfigContext(UserDict):
  """Variables for ${name} substitution while loading configurations. Every environment
     variable is available as ${env:NAME}; while a file is being loaded, ${config_dir}
     names its directory."""

  def __init__(self, globals: Optional[Dict[str, Any]]=None, os_environ: Optional[Dict[str, str]]=None):
    super().__init__()
    if not globals is None:
      self.update(deepcopy(globals))
    if os_environ is None:
      os_environ = dict(os.environ)
    for k, v in os_environ.items():
      self[f"env:{k}"] = v

  def clone(self) -> ConfigContext:
    return deepcopy(self)

  def render_str(self, template_str: str) -> str:
    return ConfigTemplate(template_str).substitute(self)

  def render_json_data(self, template_json_data: Jsonable) -> Jsonable:
    """Substitutes variables in every string of a JSON value. Raises KeyError for an undefined variable."""
    if isinstance(template_json_data, str):
      return self.render_str(template_json_data)
    if isinstance(template_json_data, list):
      return [ self.render_json_data(x) for x in template_json_data ]
    if isinstance(template_json_data, dict):
      return { k: self.render_json_data(v) for k, v in template_json_data.items() }
    return template_json_data

  # ------------------------------------------------------------------ files

  @property
  def config_file(self) -> Optional[str]:
    return self.get('config_file', None)

  @property
  def config_dir(self) -> Optional[str]:
    return self.get('config_dir', None)

  def push_config_file(self, config_file: str) -> ConfigContext:
    """Returns a copy of this context for loading config_file."""
    ctx = self.clone()
    config_file = os.path.abspath(os.path.expanduser(config_file))
    ctx['config_file'] = config_file
    ctx['config_dir'] = os.path.dirname(config_file)
    return ctx

  @property
  def profile_dir(self) -> str:
    """The directory holding named device profiles."""
    base = self.get(f"env:{CONFIG_DIR_ENV_VAR}") or DEFAULT_CONFIG_DIR
    return os.path.join(os.path.abspath(os.path.expanduser(base)), "devices")

  def device_profile_file(self, name: str) -> str:
    if not _DEVICE_NAME_RE.match(name):
      raise ValueError(f"ConfigContext: invalid device profile name {name!r}")
    return os.path.join(self.profile_dir, f"{name}.json")

  # ------------------------------------------------------------------ loading

  def config_class(self, class_name: str, required_type: Optional[Type[Config]]=None) -> Type[Config]:
    """Resolves a cfg_class name. Unqualified names are looked up in miio_protocol.config."""
    from .base import Config
    if required_type is None:
      required_type = Config
    module_name, _, class_tail = class_name.rpartition('.')
    if module_name == '':
      module_name = __name__.rsplit('.', 1)[0]
    try:
      klass = getattr(importlib.import_module(module_name), class_tail)
    except (ImportError, AttributeError) as e:
      raise RuntimeError(f"Config: unknown cfg_class {class_name}") from e
    if not isinstance(klass, type) or not issubclass(klass, required_type):
      raise RuntimeError(f"Config: {class_name} is not a subclass of required type {full_name_of_type(required_type)}")
    return klass

  @overload
  def load_json_data(self, data: Jsonable) -> Config: ...
  @overload
  def load_json_data(self, data: Jsonable, required_type: Optional[Type[_Config]]) -> _Config: ...
  def load_json_data(self, data: Jsonable, required_type: Optional[Type[Config]]=None) -> Config:
    if not isinstance(data, dict):
      raise ValueError(f"ConfigContext: expected json dict, got {full_type(data)}")
    if 'version' in data:
      version = parse_version(data['version'])
      if version > parse_version(__version__):
        raise RuntimeError(f"ConfigContext: configuration version {data['version']} is newer than supported version {__version__}")
    cfg_class_name = data.get('cfg_class')
    if not isinstance(cfg_class_name, str):
      raise ValueError(f"ConfigContext: expected str cfg_class, got {full_type(cfg_class_name)}")
    cfg_data: Jsonable = data.get('data', {})
    if isinstance(cfg_data, str):
      cfg_data = json.loads(cfg_data)
    if not isinstance(cfg_data, dict):
      raise ValueError(f"ConfigContext: expected dict data, got {full_type(cfg_data)}")
    cfg = self.config_class(cfg_class_name, required_type=required_type)()
    cfg.load_json_data(self, cfg_data)
    return cfg

  @overload
  def loads(self, s: str) -> Config: ...
  @overload
  def loads(self, s: str, required_type: Optional[Type[_Config]]) -> _Config: ...
  def loads(self, s: str, required_type: Optional[Type[Config]]=None) -> Config:
    return self.load_json_data(json.loads(s), required_type=required_type)

  @overload
  def load_file(self, config_file: str) -> Config: ...
  @overload
  def load_file(self, config_file: str, required_type: Optional[Type[_Config]]) -> _Config: ...
  def load_file(self, config_file: str, required_type: Optional[Type[Config]]=None) -> Config:
    ctx = self.push_config_file(config_file)
    logger.debug(f"Loading configuration from {ctx.config_file}")
    with open(ctx.config_file) as f:
      return ctx.loads(f.read(), required_type=required_type)

  def load_device_profile(self, name: str) -> DeviceConfig:
    from .device_cfg import DeviceConfig
    return self.load_file(self.device_profile_file(name), required_type=DeviceConfig)

  def save_device_profile(self, name: str, file_data: JsonableDict) -> str:
    """Writes a device profile document, creating the profile directory if needed. Returns the pathname."""
    pathname = self.device_profile_file(name)
    os.makedirs(os.path.dirname(pathname), exist_ok=True)
    with open(pathname, 'w') as f:
      json.dump(file_data, f, indent=2, sort_keys=True)
      f.write('\n')
    logger.info(f"Saved device profile {name} to {pathname}")
    return pathname
