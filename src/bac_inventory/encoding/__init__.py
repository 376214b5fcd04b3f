"""Tag, primitive and APDU encoding per ASHRAE 135-2016 Clause 20."""
