"""KPI snapshot engine for small retail businesses."""
