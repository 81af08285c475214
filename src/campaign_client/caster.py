"""Conversion of loosely typed values to xtk data types.

The remote service describes values with xtk types, identified either by
name (``"string"``, ``"long"``, ...) or by the numeric variant code used in
option and method signatures:

==========  ====  =============  =====================================
xtk type    code  Python type    notes
==========  ====  =============  =====================================
string         6  str            never None, defaults to ""
memo          12  str
CDATA         13  str
byte           1  int            clamped to [-128, 127]
short          2  int            clamped to [-32768, 32767]
long           3  int            clamped to 32 bits
int64             str            64 bits integers are kept as strings
float          4  float
double         5  float
datetime       7  datetime       UTC, may be None
date          10  datetime       UTC, truncated to the day, may be None
boolean       15  bool           never None, defaults to False
==========  ====  =============  =====================================
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

from .exceptions import CampaignException


def _is_nan_or_infinite(value: Any) -> bool:
    return isinstance(value, float) and (math.isnan(value) or math.isinf(value))


class XtkCaster:
    """Static helpers casting values into xtk types."""

    @staticmethod
    def variant_storage_attribute(type_: Any) -> Optional[str]:
        """Name of the ``xtk:option`` attribute storing a value of this type."""
        if type_ is None or type_ == 0 or type_ == "":
            return None
        if type_ in (6, "string", "int64"):
            return "stringValue"
        if type_ in (12, 13, "memo", "CDATA"):
            return "memoValue"
        if type_ in (1, 2, 3, 15, "byte", "short", "long", "boolean"):
            return "longValue"
        if type_ in (4, 5, "float", "double"):
            return "doubleValue"
        if type_ in (7, 10, "datetime", "datetimetz", "datetimenotz", "date"):
            return "timeStampValue"
        raise CampaignException.bad_parameter(
            "type", type_, f"Cannot get variant storage attribute name for type '{type_}'"
        )

    @classmethod
    def as_(cls, value: Any, type_: Any) -> Any:
        """Cast ``value`` to the xtk type ``type_`` (name or numeric code)."""
        if type_ == 0 or type_ == "":
            return value
        if type_ in (6, 12, 13, "string", "memo", "CDATA"):
            return cls.as_string(value)
        if type_ in (1, "byte"):
            return cls.as_byte(value)
        if type_ in (2, "short"):
            return cls.as_short(value)
        if type_ in (3, "long"):
            return cls.as_long(value)
        if type_ == "int64":
            return cls.as_int64(value)
        if type_ in (4, 5, "float", "double"):
            return cls.as_number(value)
        if type_ in (15, "boolean"):
            return cls.as_boolean(value)
        if type_ in (7, "datetime", "datetimetz", "datetimenotz"):
            return cls.as_timestamp(value)
        if type_ in (10, "date"):
            return cls.as_date(value)
        raise CampaignException.bad_parameter(
            "type", type_, f"Cannot convert value type='{type_}', value='{value}'"
        )

    @staticmethod
    def as_string(value: Any) -> str:
        """Canonical string form. ``True`` becomes ``"true"``, ``1.0`` becomes ``"1"``."""
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float):
            if _is_nan_or_infinite(value):
                return ""
            if value.is_integer():
                return str(int(value))
            return repr(value)
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
            return text.replace("+00:00", "Z")
        if isinstance(value, (dict, list, tuple, set)):
            return ""
        return str(value)

    @staticmethod
    def as_boolean(value: Any, default: bool = False) -> bool:
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("false", ""):
            return False
        if text == "true":
            return True
        try:
            return int(float(text)) != 0
        except ValueError:
            return False

    @staticmethod
    def as_number(value: Any) -> float | int:
        if value is None or value == "" or isinstance(value, (dict, list, tuple)):
            return 0
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, (int, float)):
            return 0 if _is_nan_or_infinite(value) else value
        try:
            number = float(str(value).strip())
        except ValueError:
            return 0
        if _is_nan_or_infinite(number):
            return 0
        return int(number) if number.is_integer() else number

    @classmethod
    def _as_clamped_int(cls, value: Any, low: int, high: int) -> int:
        number = cls.as_number(value)
        if not number:
            return 0
        # JavaScript-like rounding, half away from zero for positives
        number = math.floor(number + 0.5)
        return max(low, min(high, number))

    @classmethod
    def as_byte(cls, value: Any) -> int:
        return cls._as_clamped_int(value, -128, 127)

    @classmethod
    def as_short(cls, value: Any) -> int:
        return cls._as_clamped_int(value, -32768, 32767)

    @classmethod
    def as_long(cls, value: Any) -> int:
        return cls._as_clamped_int(value, -2147483648, 2147483647)

    @staticmethod
    def as_int64(value: Any) -> str:
        if value is None or value == "" or isinstance(value, (dict, list, tuple)):
            return "0"
        if isinstance(value, bool):
            return "1" if value else "0"
        if _is_nan_or_infinite(value):
            return "0"
        text = str(value).strip()
        if "." in text or text == "":
            return "0"
        try:
            int(text)
        except ValueError:
            return "0"
        return text

    @classmethod
    def as_float(cls, value: Any) -> float | int:
        return cls.as_number(value)

    @classmethod
    def as_double(cls, value: Any) -> float | int:
        return cls.as_number(value)

    @staticmethod
    def as_timestamp(value: Any) -> Optional[datetime]:
        """Parse ISO strings or epoch seconds into an aware UTC datetime."""
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        if isinstance(value, (int, float)):
            if _is_nan_or_infinite(value):
                return None
            return datetime.fromtimestamp(value, tz=timezone.utc)
        text = str(value).strip()
        if text == "":
            return None
        try:
            return datetime.fromtimestamp(float(text), tz=timezone.utc)
        except ValueError:
            pass
        iso = text.replace(" ", "T", 1)
        if iso.endswith("Z"):
            iso = iso[:-1] + "+00:00"
        try:
            timestamp = datetime.fromisoformat(iso)
        except ValueError:
            return None
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(timezone.utc)

    @classmethod
    def as_date(cls, value: Any) -> Optional[datetime]:
        timestamp = cls.as_timestamp(value)
        if timestamp is None:
            return None
        return timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
