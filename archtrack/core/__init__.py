"""Settings and process-wide setup."""
