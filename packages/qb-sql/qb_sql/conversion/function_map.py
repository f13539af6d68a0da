"""Legacy function and format translation tables.

Pure data plus the small template callables that render each target
expression. Used by :mod:`qb_sql.conversion.functions`.

Every template emits its expression arguments in the same order they appear
in the source call. Arguments listed in ``literal_args`` are interval codes,
format names or mode flags that are consumed by the template instead of being
emitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional

from .names import unquote_literal

# =============================================================================
# Format names -> to_char patterns
# =============================================================================

FORMAT_MAP = {
    "General Date": "YYYY-MM-DD HH24:MI:SS",
    "Long Date": "FMDay, FMMonth DD, YYYY",
    "Medium Date": "DD-Mon-YY",
    "Short Date": "MM/DD/YYYY",
    "Long Time": "HH24:MI:SS",
    "Medium Time": "HH:MI AM",
    "Short Time": "HH24:MI",
    "mm/dd/yyyy": "MM/DD/YYYY",
    "dd/mm/yyyy": "DD/MM/YYYY",
    "yyyy-mm-dd": "YYYY-MM-DD",
    "General Number": "9999999999D99",
    "Currency": "L9G999G999D99",
    "Fixed": "9999999999D99",
    "Standard": "9G999G999D99",
    "Percent": "999D99%",
    "#,##0": "FM9G999G990",
    "#,##0.00": "FM9G999G990D00",
    "0": "FM0",
    "0.00": "FM0D00",
    "0%": "FM0%",
    "0.00%": "FM0D00%",
}

# Boolean display formats map to a CASE rather than to_char.
BOOLEAN_FORMATS = {
    "yes/no": ("Yes", "No"),
    "true/false": ("True", "False"),
    "on/off": ("On", "Off"),
}

# Interval codes used by DateAdd / DateDiff / DatePart
INTERVAL_UNITS = {
    "yyyy": "year", "q": "month", "m": "month", "y": "day", "d": "day",
    "w": "day", "ww": "week", "h": "hour", "n": "minute", "s": "second",
}

DATE_PARTS = {
    "yyyy": "YEAR", "q": "QUARTER", "m": "MONTH", "y": "DOY", "d": "DAY",
    "w": "DOW", "ww": "WEEK", "h": "HOUR", "n": "MINUTE", "s": "SECOND",
}

# Source functions that have no portable target form (domain aggregates and
# expression evaluation). Calls are left in place behind a marker comment.
UNPORTABLE_FUNCTIONS = frozenset({
    "dlookup", "dsum", "dcount", "davg", "dmax", "dmin", "dfirst", "dlast",
    "dstdev", "dstdevp", "dvar", "dvarp", "eval",
})


@dataclass(frozen=True)
class FunctionRule:
    """Translation rule for one source function."""
    name: str
    min_args: int
    max_args: Optional[int]
    render: Callable[[List[str]], str]
    literal_args: FrozenSet[int] = frozenset()
    paired: bool = False

    def accepts(self, argc: int) -> bool:
        if argc < self.min_args:
            return False
        if self.paired and argc % 2:
            return False
        return self.max_args is None or argc <= self.max_args


def _code(arg: str) -> str:
    return unquote_literal(arg).strip().lower()


# =============================================================================
# Templates that need more than a one-liner
# =============================================================================


def _instr(args: List[str]) -> str:
    if len(args) >= 3:
        start, text, sub = args[0], args[1], args[2]
        return (
            f"COALESCE({start} - 1 + NULLIF(STRPOS(SUBSTRING({text} FROM {start}), "
            f"{sub}), 0), 0)"
        )
    return f"STRPOS({args[0]}, {args[1]})"


def _instr_rev(args: List[str]) -> str:
    text, sub = args[0], args[1]
    pos = f"STRPOS(REVERSE({text}), REVERSE({sub}))"
    return (
        f"(CASE WHEN {pos} = 0 THEN 0 "
        f"ELSE LENGTH({text}) - STRPOS(REVERSE({text}), REVERSE({sub})) - LENGTH({sub}) + 2 END)"
    )


def _strconv(args: List[str]) -> str:
    mode = _code(args[1])
    if mode == "1":
        return f"UPPER({args[0]})"
    if mode == "2":
        return f"LOWER({args[0]})"
    if mode == "3":
        return f"INITCAP({args[0]})"
    return f"({args[0]})"


def _switch(args: List[str]) -> str:
    parts = ["CASE"]
    for i in range(0, len(args) - 1, 2):
        parts.append(f"WHEN {args[i]} THEN {args[i + 1]}")
    parts.append("END")
    return " ".join(parts)


def _choose(args: List[str]) -> str:
    parts = [f"CASE {args[0]}"]
    for i, arg in enumerate(args[1:], start=1):
        parts.append(f"WHEN {i} THEN {arg}")
    parts.append("END")
    return " ".join(parts)


def _date_add(args: List[str]) -> str:
    code = _code(args[0])
    unit = INTERVAL_UNITS.get(code, "day")
    amount = f"({args[1]}) * 3" if code == "q" else args[1]
    return f"(INTERVAL '1 {unit}' * ({amount}) + {args[2]})"


def _date_diff(args: List[str]) -> str:
    code = _code(args[0])
    a, b = args[1], args[2]
    if code == "m":
        return (
            f"(-(EXTRACT(YEAR FROM ({a})::date) * 12 + EXTRACT(MONTH FROM ({a})::date)"
            f" - EXTRACT(YEAR FROM ({b})::date) * 12 - EXTRACT(MONTH FROM ({b})::date)))::integer"
        )
    if code == "q":
        return (
            f"(-(EXTRACT(YEAR FROM ({a})::date) * 4 + EXTRACT(QUARTER FROM ({a})::date)"
            f" - EXTRACT(YEAR FROM ({b})::date) * 4 - EXTRACT(QUARTER FROM ({b})::date)))::integer"
        )
    if code == "yyyy":
        return f"(-(EXTRACT(YEAR FROM ({a})::date) - EXTRACT(YEAR FROM ({b})::date)))::integer"
    if code == "ww":
        return f"(-(({a})::date - ({b})::date) / 7)"
    if code in ("h", "n", "s"):
        divisor = {"h": " / 3600", "n": " / 60", "s": ""}[code]
        return f"(-EXTRACT(EPOCH FROM ({a})::timestamp - ({b})::timestamp){divisor})::integer"
    return f"(-(({a})::date - ({b})::date))"


def _date_part(args: List[str]) -> str:
    code = _code(args[0])
    part = DATE_PARTS.get(code, "DAY")
    if code == "w":
        return f"(EXTRACT(DOW FROM {args[1]})::integer + 1)"
    return f"EXTRACT({part} FROM {args[1]})::integer"


def _format(args: List[str]) -> str:
    if len(args) < 2:
        return f"({args[0]})::text"
    fmt = unquote_literal(args[1])
    if fmt.lower() in BOOLEAN_FORMATS:
        yes, no = BOOLEAN_FORMATS[fmt.lower()]
        return f"CASE WHEN {args[0]} THEN '{yes}' ELSE '{no}' END"
    pattern = FORMAT_MAP.get(fmt, fmt).replace("'", "''")
    return f"to_char({args[0]}, '{pattern}')"


def _rule(name: str, min_args: int, max_args: Optional[int], render, literal_args=(), paired=False) -> FunctionRule:
    return FunctionRule(name, min_args, max_args, render, frozenset(literal_args), paired)


_RULES: List[FunctionRule] = [
    # Null handling
    _rule("Nz", 1, 2, lambda a: f"COALESCE({a[0]}, {a[1]})" if len(a) > 1 else f"COALESCE({a[0]}, '')"),
    _rule("IsNull", 1, 1, lambda a: f"({a[0]} IS NULL)"),
    _rule("IsDate", 1, 1, lambda a: f"(({a[0]})::text ~ '^\\d{{4}}-\\d{{2}}-\\d{{2}}')"),
    _rule("IsNumeric", 1, 1, lambda a: f"(({a[0]})::text ~ '^-?[0-9]+(\\.[0-9]+)?$')"),

    # Conditional
    _rule("IIf", 2, 3, lambda a: f"CASE WHEN {a[0]} THEN {a[1]} ELSE {a[2] if len(a) > 2 else 'NULL'} END"),
    _rule("Switch", 2, None, _switch, paired=True),
    _rule("Choose", 2, None, _choose),

    # String
    _rule("Len", 1, 1, lambda a: f"LENGTH({a[0]})"),
    _rule("Mid", 2, 3, lambda a: f"SUBSTRING({a[0]} FROM {a[1]} FOR {a[2]})" if len(a) > 2 else f"SUBSTRING({a[0]} FROM {a[1]})"),
    _rule("Mid$", 2, 3, lambda a: f"SUBSTRING({a[0]} FROM {a[1]} FOR {a[2]})" if len(a) > 2 else f"SUBSTRING({a[0]} FROM {a[1]})"),
    _rule("Left", 2, 2, lambda a: f"LEFT({a[0]}, {a[1]})"),
    _rule("Left$", 2, 2, lambda a: f"LEFT({a[0]}, {a[1]})"),
    _rule("Right", 2, 2, lambda a: f"RIGHT({a[0]}, {a[1]})"),
    _rule("Right$", 2, 2, lambda a: f"RIGHT({a[0]}, {a[1]})"),
    _rule("Trim", 1, 1, lambda a: f"TRIM({a[0]})"),
    _rule("Trim$", 1, 1, lambda a: f"TRIM({a[0]})"),
    _rule("LTrim", 1, 1, lambda a: f"LTRIM({a[0]})"),
    _rule("RTrim", 1, 1, lambda a: f"RTRIM({a[0]})"),
    _rule("InStr", 2, 4, _instr, literal_args=(3,)),
    _rule("InStrRev", 2, 2, _instr_rev),
    _rule("UCase", 1, 1, lambda a: f"UPPER({a[0]})"),
    _rule("UCase$", 1, 1, lambda a: f"UPPER({a[0]})"),
    _rule("LCase", 1, 1, lambda a: f"LOWER({a[0]})"),
    _rule("LCase$", 1, 1, lambda a: f"LOWER({a[0]})"),
    _rule("Replace", 3, 3, lambda a: f"REPLACE({a[0]}, {a[1]}, {a[2]})"),
    _rule("Str", 1, 1, lambda a: f"({a[0]})::text"),
    _rule("Str$", 1, 1, lambda a: f"({a[0]})::text"),
    _rule("StrConv", 2, 2, _strconv, literal_args=(1,)),
    _rule("Space", 1, 1, lambda a: f"REPEAT(' ', {a[0]})"),
    _rule("String", 2, 2, lambda a: f"LPAD('', {a[0]}, LEFT({a[1]}, 1))"),
    _rule("StrReverse", 1, 1, lambda a: f"REVERSE({a[0]})"),
    _rule("Asc", 1, 1, lambda a: f"ASCII({a[0]})"),
    _rule("Chr", 1, 1, lambda a: f"CHR({a[0]})"),
    _rule("Hex", 1, 1, lambda a: f"UPPER(to_hex({a[0]}))"),

    # Type conversion
    _rule("CInt", 1, 1, lambda a: f"({a[0]})::integer"),
    _rule("CLng", 1, 1, lambda a: f"({a[0]})::bigint"),
    _rule("CDbl", 1, 1, lambda a: f"({a[0]})::double precision"),
    _rule("CSng", 1, 1, lambda a: f"({a[0]})::real"),
    _rule("CStr", 1, 1, lambda a: f"({a[0]})::text"),
    _rule("CDate", 1, 1, lambda a: f"({a[0]})::date"),
    _rule("CBool", 1, 1, lambda a: f"({a[0]})::boolean"),
    _rule("CDec", 1, 1, lambda a: f"({a[0]})::numeric"),
    _rule("CCur", 1, 1, lambda a: f"({a[0]})::numeric(19,4)"),
    _rule("CVar", 1, 1, lambda a: f"({a[0]})"),
    _rule("Val", 1, 1, lambda a: f"({a[0]})::numeric"),

    # Date/time
    _rule("DateSerial", 3, 3, lambda a: f"make_date({a[0]}, {a[1]}, {a[2]})"),
    _rule("TimeSerial", 3, 3, lambda a: f"make_time({a[0]}, {a[1]}, {a[2]})"),
    _rule("DateAdd", 3, 3, _date_add, literal_args=(0,)),
    _rule("DateDiff", 3, 5, _date_diff, literal_args=(0, 3, 4)),
    _rule("DatePart", 2, 4, _date_part, literal_args=(0, 2, 3)),
    _rule("DateValue", 1, 1, lambda a: f"({a[0]})::date"),
    _rule("TimeValue", 1, 1, lambda a: f"({a[0]})::time"),
    _rule("Year", 1, 1, lambda a: f"EXTRACT(YEAR FROM {a[0]})::integer"),
    _rule("Month", 1, 1, lambda a: f"EXTRACT(MONTH FROM {a[0]})::integer"),
    _rule("Day", 1, 1, lambda a: f"EXTRACT(DAY FROM {a[0]})::integer"),
    _rule("Hour", 1, 1, lambda a: f"EXTRACT(HOUR FROM {a[0]})::integer"),
    _rule("Minute", 1, 1, lambda a: f"EXTRACT(MINUTE FROM {a[0]})::integer"),
    _rule("Second", 1, 1, lambda a: f"EXTRACT(SECOND FROM {a[0]})::integer"),
    _rule("Weekday", 1, 2, lambda a: f"(EXTRACT(DOW FROM {a[0]})::integer + 1)", literal_args=(1,)),
    _rule("MonthName", 1, 2, lambda a: f"to_char(make_date(2000, {a[0]}, 1), 'FMMonth')", literal_args=(1,)),
    _rule("WeekdayName", 1, 3, lambda a: f"to_char(make_date(2000, 1, ({a[0]}) + 1), 'FMDay')", literal_args=(1, 2)),
    _rule("CurrentUser", 0, 0, lambda a: "current_user"),

    # Formatting
    _rule("Format", 1, 2, _format, literal_args=(1,)),

    # Math
    _rule("Int", 1, 1, lambda a: f"FLOOR({a[0]})"),
    _rule("Fix", 1, 1, lambda a: f"TRUNC({a[0]})"),
    _rule("Abs", 1, 1, lambda a: f"ABS({a[0]})"),
    _rule("Round", 1, 2, lambda a: f"ROUND({a[0]}, {a[1]})" if len(a) > 1 else f"ROUND({a[0]})"),
    _rule("Sgn", 1, 1, lambda a: f"SIGN({a[0]})"),
    _rule("Sqr", 1, 1, lambda a: f"SQRT({a[0]})"),
    _rule("Log", 1, 1, lambda a: f"LN({a[0]})"),
    _rule("Exp", 1, 1, lambda a: f"EXP({a[0]})"),
    _rule("Atn", 1, 1, lambda a: f"ATAN({a[0]})"),

    # Aggregates (first_agg/last_agg are created by the aggregate preamble)
    _rule("First", 1, 1, lambda a: f"first_agg({a[0]})"),
    _rule("Last", 1, 1, lambda a: f"last_agg({a[0]})"),
    _rule("StDev", 1, 1, lambda a: f"STDDEV_SAMP({a[0]})"),
    _rule("StDevP", 1, 1, lambda a: f"STDDEV_POP({a[0]})"),
    _rule("Var", 1, 1, lambda a: f"VAR_SAMP({a[0]})"),
    _rule("VarP", 1, 1, lambda a: f"VAR_POP({a[0]})"),
]

FUNCTION_MAP: Dict[str, FunctionRule] = {rule.name.lower(): rule for rule in _RULES}
