"""Engineering-unit display symbols.

Deliberately narrow: only the codes below have a symbol.  Any other code
is shown as its number so nothing is silently invented.
"""

from __future__ import annotations

UNIT_SYMBOLS: dict[int, str] = {
    19: "kWh",
    27: "Hz",
    48: "kW",
    53: "Pa",
    54: "kPa",
    62: "°C",
    98: "%",
    111: "rpm",
    135: "m³/h",
    206: "mmAq",
}


def unit_symbol(code: int | None) -> str:
    """Return the display symbol for an engineering-units code.

    :param code: ``units`` enumeration value, or ``None`` when absent.
    :returns: The symbol, the code as text when unmapped, or ``""``.
    """
    if code is None:
        return ""
    return UNIT_SYMBOLS.get(code, str(code))
