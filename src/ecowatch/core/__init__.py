"""Configuration, logging, process execution and errors."""
