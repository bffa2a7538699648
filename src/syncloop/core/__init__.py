"""Core domain packages for syncloop."""
