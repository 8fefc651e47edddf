"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from blebridge.core.model import GattStatus, PresentationFormat, ReadResult, SubscriptionState

ValueHandler = Callable[[bytes], None]


class AttributeLink(Protocol):
    """The remote characteristic as seen through the platform attribute-protocol stack."""

    def read(self, *, cached: bool = True) -> ReadResult:
        """Read the current value of the characteristic."""

    def write_client_configuration(self, state: SubscriptionState) -> GattStatus:
        """Write the configuration descriptor requesting ``state`` delivery.

        May raise ``AttributeAuthorizationError`` when the remote rejects the write.
        """

    def presentation_format(self) -> PresentationFormat | int | None:
        """Return the advertised presentation format code, if any."""

    def set_value_handler(self, handler: ValueHandler | None) -> None:
        """Register the callback that receives value-changed payloads."""
