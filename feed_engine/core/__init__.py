"""Core composition, continuation and scheduling logic."""
