"""Channel Views API — denormalised read models over channels, media and social activity."""
