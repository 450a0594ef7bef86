"""HTTP surface: dashboard API and webhook receiver."""
