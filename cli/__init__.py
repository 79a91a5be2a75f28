"""Command-line replay of sensor readings through the analytics engine."""
