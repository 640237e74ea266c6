from typing import Any, Iterable, Sequence

from .errors import StructuralValidationError, UnsupportedChannelError


class RequestValidator:
    """Checks that run before any outbound call."""

    def __init__(self, allowed_channels: Iterable[str]):
        self.allowed_channels = frozenset(c.strip().upper() for c in allowed_channels)

    def validate_structure(self, errors: Sequence[Any]) -> None:
        """
        Raise StructuralValidationError if request parsing produced errors.

        `errors` is the list pydantic/FastAPI reports; each entry is a dict
        with "loc" and "msg".
        """
        if not errors:
            return

        parts = []
        for err in errors:
            if isinstance(err, dict):
                loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
                msg = str(err.get("msg", "invalid value"))
                parts.append(f"{loc}: {msg}" if loc else msg)
            else:
                parts.append(str(err))
        raise StructuralValidationError("; ".join(parts)[:500])

    def validate_notification_channels(self, channels: Iterable[str]) -> None:
        channels = list(channels or [])
        if not channels:
            raise UnsupportedChannelError("at least one OTP channel is required")

        unknown = sorted({str(c) for c in channels if str(c).strip().upper() not in self.allowed_channels})
        if unknown:
            raise UnsupportedChannelError(f"unsupported OTP channel(s): {', '.join(unknown)}")
