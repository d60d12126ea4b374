"""Language server for autorefresh schema files."""
