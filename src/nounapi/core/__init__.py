"""Core helpers shared by every nounapi surface."""
