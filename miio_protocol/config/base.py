# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration support.

A configuration file is a JSON document of the form

    {"version": "1.0.0", "cfg_class": "DeviceConfig", "data": { ... }}

where cfg_class names a Config subclass (unqualified names are looked up in
miio_protocol.config) and data holds its properties. String values in data may
reference ${name} or ${env:VAR} variables from the ConfigContext.
"""

from __future__ import annotations

import json

from ..internal_types import *
from ..version import __version__
from ..util import full_type
from .context import ConfigContext

_T = TypeVar('_T')

class Config:
  _template_json_data: Optional[JsonableDict] = None
  """The data as it appeared in the file, before variable substitution."""

  _json_data: Optional[JsonableDict] = None
  """The data after variable substitution."""

  _context: Optional[ConfigContext] = None

  def __init__(self):
    pass

  @classmethod
  def make_file_data(cls, data: JsonableDict) -> JsonableDict:
    """Wraps property data in the document form accepted by ConfigContext.loads()."""
    return {"version": __version__, "cfg_class": cls.__name__, "data": data}

  def get_context(self) -> ConfigContext:
    result = self._context
    assert not result is None
    return result

  def bake(self):
    """Called after the template data has been rendered. Subclasses extract and validate their
       properties here."""
    pass

  @property
  def config_file(self) -> Optional[str]:
    """The fully qualified pathname of the configuration file from which this Config
       originated, or None if not from a file"""
    if self._context is None:
      return None
    return self._context.config_file

  @property
  def config_dir(self) -> Optional[str]:
    if self._context is None:
      return None
    return self._context.config_dir

  def load_json_data(self, ctx: ConfigContext, json_data: JsonableDict):
    if not isinstance(json_data, dict):
      raise TypeError(f"Config: Expected config data to be dict, got {full_type(json_data)}")
    self._context = ctx.clone()
    self._template_json_data = json_data
    rendered = self._context.render_json_data(json_data)
    if not isinstance(rendered, dict):
      raise TypeError(f"Config: Expected rendered config data to be dict, got {full_type(rendered)}")
    self._json_data = rendered
    self.bake()

  def loads(self, ctx: ConfigContext, config_text: str):
    self.load_json_data(ctx, json.loads(config_text))

  _no_default = object()

  @overload
  def get_template_cfg_property(self, key: str, default: _T) -> Union[Jsonable, _T]: pass

  @overload
  def get_template_cfg_property(self, key: str) -> Jsonable: pass

  def get_template_cfg_property(self, key: str, default = _no_default):
    """Returns an unrendered property. Used for nested configurations, which are rendered
       in their own context."""
    return self._lookup(self._template_json_data, key, default)

  @overload
  def get_cfg_property(self, key: str, default: _T) -> Union[Jsonable, _T]: pass

  @overload
  def get_cfg_property(self, key: str) -> Jsonable: pass

  def get_cfg_property(self, key: str, default = _no_default):
    return self._lookup(self._json_data, key, default)

  def _lookup(self, data: Optional[JsonableDict], key: str, default: Any) -> Any:
    if data is None:
      raise RuntimeError(f"Config: property {key} requested before configuration was loaded")
    result = data.get(key, default)
    if result is self._no_default:
      raise KeyError(f"Config: Property {key} does not exist and has no default")
    return result

  def get_cfg_property_str(self, key: str, default: Any=_no_default) -> Any:
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if not isinstance(result, str):
      raise TypeError(f"Config: Expected property {key} to be str, got {full_type(result)}")
    return result

  def get_cfg_property_int(self, key: str, default: Any=_no_default) -> Any:
    """Returns an int property. Numeric strings are accepted, so values can come from ${env:VAR}."""
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if isinstance(result, str):
      try:
        result = int(result)
      except ValueError:
        pass
    if not isinstance(result, int) or isinstance(result, bool):
      raise TypeError(f"Config: Expected property {key} to be int, got {full_type(result)}")
    return result

  def get_cfg_property_str_list(self, key: str, default: Any=_no_default) -> Any:
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if not isinstance(result, list) or not all(isinstance(x, str) for x in result):
      raise TypeError(f"Config: Expected property {key} to be a list of str, got {result!r}")
    return result
