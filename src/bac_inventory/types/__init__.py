"""Protocol enumerations, primitive types, tagged values and point types."""
