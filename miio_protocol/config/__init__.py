from .base import Config
from .context import ConfigContext
from .token_cfg import TokenConfig, LiteralTokenConfig
from .keyring_token import KeyringTokenConfig
from .device_cfg import DeviceConfig
