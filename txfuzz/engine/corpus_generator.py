"""
Corpus Generator - Fixed boundary-value test cases per value category.

Produces, for each category, a deterministic, finite sequence of labelled
test cases. Unlike mutation-based generation there is no randomness and no
state between calls: the same category always yields the same tuple.

CATEGORIES (campaign order):
============================
- empty:         interface token only
- int32/int64:   0, +-1, +-2, type extremes, unsigned aliases of -1/-2,
                 off-by-one extremes and a few ordinary values
- float/double:  ordinary values, constants, +-MAX, smallest subnormal,
                 NaN and both infinities
- boolean:       true / false
- string:        empty and short strings, format directives, power-of-two
                 fill lengths, NUL and U+FFFF runs, injection and traversal
- bytes:         0..256 length ladder filled with 0x41
- int_array:     empty, ordinary, boundary elements, single element
- string_array:  empty, ordinary, empty element, directives, special chars
- combination:   int32 x int32, int32 x string, string x bytes pairings

USAGE:
======
    generator = CorpusGenerator()

    for category, test_cases in generator.iter_corpus():
        for test_case in test_cases:
            ...

    generator.corpus_size()  # trials per transaction code
"""
import math
import sys
from typing import Callable, Dict, Iterator, List, Sequence, Tuple

from txfuzz.engine.parcel import INT32_MAX, INT32_MIN, INT64_MAX, INT64_MIN
from txfuzz.models import CATEGORY_ORDER, Category, TestCase, TypedValue, ValueKind

FLOAT32_MAX = 3.4028234663852886e38
FLOAT32_MIN = 1.401298464324817e-45  # smallest positive subnormal
DOUBLE_MAX = sys.float_info.max
DOUBLE_MIN = 5e-324

FILL_CHAR = "A"
FILL_BYTE = 0x41

INT32_VALUES: Tuple[int, ...] = (
    0, 1, -1, 2, -2,
    INT32_MAX,
    INT32_MIN,
    -1,  # 0xFFFFFFFF reinterpreted as signed
    -2,  # 0xFFFFFFFE reinterpreted as signed
    65535, 256, 255, 127, 128, 42, 123, 456, -789,
    INT32_MAX - 1, INT32_MIN + 1,
)

INT64_VALUES: Tuple[int, ...] = (
    0, 1, -1, 2, -2,
    INT64_MAX,
    INT64_MIN,
    -2,  # 0xFFFFFFFFFFFFFFFE
    -1,  # 0xFFFFFFFFFFFFFFFF
    9876543210, -1234567890,
    INT64_MAX - 1, INT64_MIN + 1,
)


def _real_values(max_value: float, min_value: float, pi: float, e: float) -> Tuple[float, ...]:
    return (
        0.0, 1.0, -1.0, 2.0, -2.0,
        pi, e,
        1.23, -4.56, 0.5, -0.5,
        max_value, min_value, -max_value,
        math.nan, math.inf, -math.inf,
        255.0, 254.0,
    )


FLOAT_VALUES = _real_values(FLOAT32_MAX, FLOAT32_MIN, 3.141592, 2.718281)
DOUBLE_VALUES = _real_values(DOUBLE_MAX, DOUBLE_MIN, 3.141592653589793, 2.718281828459045)

FILL_LENGTHS: Tuple[int, ...] = (4, 7, 8, 10, 15, 16, 31, 32, 63, 64, 127, 128)
BYTE_LENGTHS: Tuple[int, ...] = (0, 1, 7, 8, 15, 16, 31, 32, 63, 64, 127, 128, 255, 256)

STRING_VALUES: Tuple[str, ...] = (
    "",
    "A",
    "Test",
    "NormalString",
    # format directives
    "%s",
    "%x",
    "%n",
    "%s%s%s%s",
    "%x%x%x%x",
    "%%n%%x%%s%s%%n1",
    "3%%n%%x%%s%s%%n1",
    # fixed-size buffer boundaries
    *(FILL_CHAR * length for length in FILL_LENGTHS),
    # terminator vs length confusion
    "\u0000",
    "\u0000" * 4,
    "\uffff",
    "\uffff" * 4,
    "\uffff" * 10,
    "\u00ff" * 9 + "\u00fc",
    "SpecialChars!@#$%^&*()",
    # injection / traversal
    "' OR '1'='1",
    "'; DROP TABLE users--",
    "../../../etc/passwd",
    "....//....//....//etc/passwd",
)

INT_ARRAY_VALUES: Tuple[Tuple[int, ...], ...] = (
    (),
    (1, 2, 3),
    (0, -1, INT32_MAX, INT32_MIN),
    (1,),
    (0xFF, 0xFE, 0),
)

STRING_ARRAY_VALUES: Tuple[Tuple[str, ...], ...] = (
    (),
    ("A", "B", "C"),
    ("",),
    ("%s", "%x", "%n"),
    ("\u0000", "\uffff"),
    ("NormalString", "SpecialChars!@#$%^&()"),
)


def _single(category: Category, kind: ValueKind, label: str, value) -> TestCase:
    return TestCase(category=category, label=label, values=(TypedValue(kind, value),))


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def _empty_cases() -> List[TestCase]:
    return [TestCase(category=Category.EMPTY, label="Empty")]


def _int32_cases() -> List[TestCase]:
    return [_single(Category.INT32, ValueKind.INT32, f"i32={v}", v) for v in INT32_VALUES]


def _int64_cases() -> List[TestCase]:
    return [_single(Category.INT64, ValueKind.INT64, f"i64={v}", v) for v in INT64_VALUES]


def _float_cases() -> List[TestCase]:
    return [_single(Category.FLOAT, ValueKind.FLOAT, f"float={v!r}", v) for v in FLOAT_VALUES]


def _double_cases() -> List[TestCase]:
    return [_single(Category.DOUBLE, ValueKind.DOUBLE, f"double={v!r}", v) for v in DOUBLE_VALUES]


def _boolean_cases() -> List[TestCase]:
    return [
        _single(Category.BOOLEAN, ValueKind.BOOL, f"bool={_format_bool(v)}", v)
        for v in (True, False)
    ]


def _string_cases() -> List[TestCase]:
    return [
        _single(Category.STRING, ValueKind.STRING, f"string({len(s)})", s)
        for s in STRING_VALUES
    ]


def _bytes_cases() -> List[TestCase]:
    return [
        _single(Category.BYTES, ValueKind.BYTES, f"byte[{n}]", bytes([FILL_BYTE]) * n)
        for n in BYTE_LENGTHS
    ]


def _int_array_cases() -> List[TestCase]:
    return [
        _single(Category.INT_ARRAY, ValueKind.INT_ARRAY, f"int[{len(a)}]", a)
        for a in INT_ARRAY_VALUES
    ]


def _string_array_cases() -> List[TestCase]:
    return [
        _single(Category.STRING_ARRAY, ValueKind.STRING_ARRAY, f"string[{len(a)}]", a)
        for a in STRING_ARRAY_VALUES
    ]


def _pair(label: str, *values: TypedValue) -> TestCase:
    return TestCase(category=Category.COMBINATION, label=label, values=tuple(values))


def _int_int(first: int, second: int) -> TestCase:
    return _pair(
        f"i32={first},i32={second}",
        TypedValue(ValueKind.INT32, first),
        TypedValue(ValueKind.INT32, second),
    )


def _int_string(number: int, text: str) -> TestCase:
    return _pair(
        f"i32={number},str({len(text)})",
        TypedValue(ValueKind.INT32, number),
        TypedValue(ValueKind.STRING, text),
    )


def _string_bytes(text: str, data: bytes) -> TestCase:
    return _pair(
        f"str,bytes[{len(data)}]",
        TypedValue(ValueKind.STRING, text),
        TypedValue(ValueKind.BYTES, data),
    )


def _combination_cases() -> List[TestCase]:
    # High-signal pairings only; a full cross product would dwarf every other category.
    return [
        _int_int(-1, 2),
        _int_int(INT32_MAX, 1),
        _int_string(1, FILL_CHAR * 32),
        _int_string(-1, FILL_CHAR * 16),
        _string_bytes("%s%s%s", bytes([FILL_BYTE]) * 128),
        _string_bytes("%n%x", b"\xff" * 64),
    ]


_BUILDERS: Dict[Category, Callable[[], List[TestCase]]] = {
    Category.EMPTY: _empty_cases,
    Category.INT32: _int32_cases,
    Category.INT64: _int64_cases,
    Category.FLOAT: _float_cases,
    Category.DOUBLE: _double_cases,
    Category.BOOLEAN: _boolean_cases,
    Category.STRING: _string_cases,
    Category.BYTES: _bytes_cases,
    Category.INT_ARRAY: _int_array_cases,
    Category.STRING_ARRAY: _string_array_cases,
    Category.COMBINATION: _combination_cases,
}


class CorpusGenerator:
    """
    Deterministic boundary-value corpus.

    Sequences are pure functions of the category; the transaction code does
    not influence them, so every code sees the same trials in the same order.
    """

    def __init__(self, categories: Sequence[Category] = CATEGORY_ORDER):
        self.categories: Tuple[Category, ...] = tuple(categories)

    def generate(self, category: Category) -> Tuple[TestCase, ...]:
        """Return the ordered test cases for one category."""
        return tuple(_BUILDERS[category]())

    def iter_corpus(self) -> Iterator[Tuple[Category, Tuple[TestCase, ...]]]:
        """Yield (category, test_cases) in campaign order."""
        for category in self.categories:
            yield category, self.generate(category)

    def corpus_size(self) -> int:
        """Number of trials per transaction code."""
        return sum(len(self.generate(category)) for category in self.categories)
