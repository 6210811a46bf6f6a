"""External integrations - chain and Polymarket APIs."""
