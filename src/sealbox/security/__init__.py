"""Security package of Sealbox."""
