#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Device -- a thin convenience layer over Session for operations common to all miIO devices.

Device families subclass Device and add their own method vocabularies (see eyecare_lamp.py).
"""

from __future__ import annotations

from .internal_types import *
from .constants import INFO_METHOD
from .exceptions import InvalidResponseError, InvalidParametersError
from .codec import Response, Params
from .session import Session
from .token import Token

MD5_HEX_LENGTH = 32

class Device(ContextManager['Device']):
    """Base class for all miIO devices."""

    session: Session

    def __init__(
            self,
            address: Optional[str]=None,
            token: Optional[Union[str, bytes, Token]]=None,
            acceptable_models: Optional[Iterable[str]]=None,
            timeout: int=0,
            retries: int=0,
            session: Optional[Session]=None,
          ):
        """
        Parameters:
            address:           The IP address of the device. If None, the first device on the network
                                 whose model is in acceptable_models is chosen.
            token:             The device token. If None, it is taken from the device's hello reply
                                 (unprovisioned devices only).
            acceptable_models: The model strings this device may have.
            timeout:           The receive timeout in milliseconds; values < 1 select the default.
            retries:           The number of retries after a failed exchange.
            session:           An existing session to use instead; the other parameters are then ignored.
        """
        if session is None:
            session = Session(
                address=address,
                token=token,
                acceptable_models=acceptable_models,
                timeout=timeout,
                retries=retries,
              )
        self.session = session

    @property
    def address(self) -> Optional[str]:
        return self.session.address

    @property
    def token(self) -> Optional[Token]:
        return self.session.token

    @property
    def timeout(self) -> int:
        return self.session.timeout

    @property
    def retries(self) -> int:
        return self.session.retries

    @property
    def acceptable_models(self) -> Optional[FrozenSet[str]]:
        return self.session.acceptable_models

    def discover(self) -> bool:
        """Connects to the device, discovering it if no address was given. Returns True on success."""
        return self.session.discover()

    def send(self, method: str, params: Params=None) -> Response:
        return self.session.send(method, params)

    def send_to_object(self, method: str, params: Params=None) -> JsonableDict:
        """Sends a command whose result must be a JSON object."""
        result = self.send(method, params).parameters
        if not isinstance(result, dict):
            raise InvalidResponseError(f"{method}: expected an object result, got {type(result).__name__}")
        return result

    def send_to_array(self, method: str, params: Params=None) -> JsonableList:
        """Sends a command whose result must be a JSON array."""
        result = self.send(method, params).parameters
        if not isinstance(result, list):
            raise InvalidResponseError(f"{method}: expected an array result, got {type(result).__name__}")
        return result

    def send_ok(self, method: str, params: Params=None) -> bool:
        """Sends a command and returns True if the device answered ["ok"] (case-insensitive)."""
        result = self.send_to_array(method, params)
        return len(result) > 0 and str(result[0]).lower() == "ok"

    def info(self) -> JsonableDict:
        return self.send_to_object(INFO_METHOD)

    def model(self) -> str:
        return str(self.info().get("model", ""))

    def firmware(self) -> str:
        return str(self.info().get("fw_ver", ""))

    def update(self, url: str, md5: str) -> bool:
        """Commands the device to download and install a firmware update.

        Returns True if the command was accepted; this does not mean the update succeeded.
        """
        if url is None or md5 is None or len(md5) != MD5_HEX_LENGTH:
            raise InvalidParametersError("update requires a URL and a 32-digit MD5 checksum")
        params: JsonableDict = {
            "mode": "normal",
            "install": "1",
            "app_url": url,
            "file_md5": md5,
            "proc": "dnld install",
          }
        return self.send_ok("miIO.ota", params)

    def update_progress(self) -> int:
        """The firmware update progress, 0..100."""
        result = self.send_to_array("miIO.get_ota_progress")
        progress = result[0] if len(result) > 0 else -1
        if not isinstance(progress, int) or isinstance(progress, bool) or progress < 0 or progress > 100:
            raise InvalidResponseError(f"Invalid update progress: {progress!r}")
        return progress

    def update_status(self) -> str:
        result = self.send_to_array("miIO.get_ota_state")
        if len(result) == 0 or result[0] is None:
            raise InvalidResponseError("No update status returned")
        return str(result[0])

    def configure_router(self, ssid: str, password: str, uid: int=0) -> bool:
        """Configures the device's WiFi connection.

        Returns True if the command was accepted; this does not mean the connection was established.
        """
        if ssid is None or password is None:
            raise InvalidParametersError("configure_router requires an SSID and a password")
        return self.send_ok("miIO.config_router", {"ssid": ssid, "passwd": password, "uid": uid})

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False
