"""Pure calendar and billing arithmetic. Nothing in this package touches the database."""
