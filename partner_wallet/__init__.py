"""Partner wallet backend package."""
