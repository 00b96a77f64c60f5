#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
EyecareLamp -- the Philips eyecare smart lamp (model philips.light.sread1).
"""

from __future__ import annotations

from enum import Enum

from .internal_types import *
from .exceptions import InvalidResponseError, InvalidParametersError
from .device import Device
from .session import Session
from .token import Token

EYECARE_LAMP_MODELS = ("philips.light.sread1",)

class PropName(Enum):
    """The lamp properties that can be queried with get_prop."""
    POWER = "power"
    """Either "on" or "off"."""
    AMBIENT_LIGHT_POWER = "ambstatus"
    """Either "on" or "off"."""
    BRIGHTNESS = "bright"
    """1..100"""
    AMBIENT_LIGHT_BRIGHTNESS = "ambvalue"
    """1..100"""
    EYECARE_MODE = "eyecare"
    SCENE_MODE = "scene_num"
    """1..4: study, reading, phone, default"""
    EYE_FATIGUE_REMINDER = "notifystatus"
    NIGHT_LIGHT = "bls"
    SLEEP_TIME_LEFT = "dvalue"
    """Minutes until power off, 0..60. 0 if inactive."""

class Prop:
    """A get_prop request for a fixed list of properties, and the parsing of its reply."""
    props: List[PropName]

    def __init__(self, props: Optional[Iterable[PropName]]=None):
        self.props = [] if props is None else list(props)

    def request_array(self) -> JsonableList:
        if len(self.props) == 0:
            raise InvalidParametersError("At least one property must be requested")
        return [ p.value for p in self.props ]

    def parse_response(self, response: Optional[JsonableList]) -> Dict[PropName, str]:
        if response is None or len(response) != len(self.props):
            raise InvalidResponseError(f"Expected {len(self.props)} property values, got {response!r}")
        return { p: ("" if v is None else str(v)) for p, v in zip(self.props, response) }

def _on_off(on: bool) -> JsonableList:
    return ["on" if on else "off"]

class EyecareLamp(Device):
    def __init__(
            self,
            address: Optional[str]=None,
            token: Optional[Union[str, bytes, Token]]=None,
            timeout: int=0,
            retries: int=0,
            session: Optional[Session]=None,
          ):
        super().__init__(address, token, EYECARE_LAMP_MODELS, timeout, retries, session=session)

    def get_props(self, props: Iterable[PropName]) -> Dict[PropName, str]:
        prop = Prop(props)
        return prop.parse_response(self.send_to_array("get_prop", prop.request_array()))

    def get_single_prop(self, prop: PropName) -> str:
        return self.get_props([prop])[prop]

    def get_int_prop(self, prop: PropName) -> int:
        value = self.get_single_prop(prop)
        try:
            return int(value)
        except ValueError as e:
            raise InvalidResponseError(f"Property {prop.value} is not an integer: {value!r}") from e

    @property
    def status(self) -> Dict[PropName, str]:
        return self.get_props(list(PropName))

    def toggle_power(self) -> bool:
        return self.send_ok("toggle", [])

    def set_power(self, on: bool) -> bool:
        return self.send_ok("set_power", _on_off(on))

    def is_on(self) -> bool:
        return self.get_single_prop(PropName.POWER) == "on"

    def set_ambient_light_power(self, on: bool) -> bool:
        return self.send_ok("enable_amb", _on_off(on))

    def is_ambient_light_on(self) -> bool:
        return self.get_single_prop(PropName.AMBIENT_LIGHT_POWER) == "on"

    def set_brightness(self, brightness: int) -> bool:
        """brightness: 1..100"""
        return self.send_ok("set_bright", [brightness])

    def brightness(self) -> int:
        return self.get_int_prop(PropName.BRIGHTNESS)

    def set_ambient_light_brightness(self, brightness: int) -> bool:
        return self.send_ok("set_amb_bright", [brightness])

    def ambient_light_brightness(self) -> int:
        return self.get_int_prop(PropName.AMBIENT_LIGHT_BRIGHTNESS)

    def set_eyecare(self, on: bool) -> bool:
        return self.send_ok("notify_on", _on_off(on))

    def is_eyecare_on(self) -> bool:
        return self.get_single_prop(PropName.EYECARE_MODE) == "on"

    def set_user_scene(self, mode: int) -> bool:
        """mode: 1..4 (study, reading, phone, default)"""
        return self.send_ok("set_user_scene", [mode])

    def user_scene(self) -> int:
        return self.get_int_prop(PropName.SCENE_MODE)

    def set_eye_strain_reminder(self, on: bool) -> bool:
        """Blink the lamp every 40 minutes as a reminder to rest."""
        return self.send_ok("set_notifyuser", _on_off(on))

    def is_eye_strain_reminder_on(self) -> bool:
        return self.get_single_prop(PropName.EYE_FATIGUE_REMINDER) == "on"

    def set_night_mode(self, on: bool) -> bool:
        """When turned on in the dark, only the ambient light comes on at first."""
        return self.send_ok("enable_bl", _on_off(on))

    def is_night_mode_on(self) -> bool:
        return self.get_single_prop(PropName.NIGHT_LIGHT) == "on"

    def set_time_until_power_off(self, minutes: int) -> bool:
        """minutes: 0..60; 0 cancels the delay."""
        return self.send_ok("delay_off", [minutes])

    def time_until_power_off(self) -> int:
        return self.get_int_prop(PropName.SLEEP_TIME_LEFT)
