"""Payload encoding: interface token plus typed values into a request parcel."""
from typing import Callable, Dict, Iterable, Optional

from txfuzz.engine.parcel import Parcel
from txfuzz.exceptions import SerializationError
from txfuzz.models import TestCase, TypedValue, ValueKind


_WRITERS: Dict[ValueKind, Callable[[Parcel, object], None]] = {
    ValueKind.INT32: Parcel.write_int32,
    ValueKind.INT64: Parcel.write_int64,
    ValueKind.FLOAT: Parcel.write_float,
    ValueKind.DOUBLE: Parcel.write_double,
    ValueKind.BOOL: Parcel.write_bool,
    ValueKind.STRING: Parcel.write_string,
    ValueKind.BYTES: Parcel.write_bytes,
    ValueKind.INT_ARRAY: Parcel.write_int_array,
    ValueKind.STRING_ARRAY: Parcel.write_string_array,
}


class PayloadEncoder:
    """Writes the identity token (when present) followed by each value in order."""

    def encode_values(
        self,
        parcel: Parcel,
        values: Iterable[TypedValue],
        identity_token: Optional[str] = None,
    ) -> Parcel:
        if identity_token is not None:
            parcel.write_interface_token(identity_token)

        for typed in values:
            writer = _WRITERS.get(typed.kind)
            if writer is None:
                raise SerializationError(
                    f"No primitive writer for value kind {typed.kind!r}",
                    details={"kind": str(typed.kind)},
                )
            writer(parcel, typed.value)

        return parcel

    def encode(
        self,
        parcel: Parcel,
        test_case: TestCase,
        identity_token: Optional[str] = None,
    ) -> Parcel:
        """Encode a corpus test case. SerializationError propagates to the caller."""
        return self.encode_values(parcel, test_case.values, identity_token)
