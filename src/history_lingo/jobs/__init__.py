"""Population-wide maintenance jobs and their scheduler."""
