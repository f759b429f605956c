"""Configuration, data preparation, download and command-mapping helpers."""
