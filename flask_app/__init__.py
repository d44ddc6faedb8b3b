"""JSON HTTP surface over the PTEL engine."""
