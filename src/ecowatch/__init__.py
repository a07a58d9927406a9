"""Build verification for the Veryl project ecosystem."""
