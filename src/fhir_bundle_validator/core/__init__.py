"""Core building blocks shared by every validator layer."""
