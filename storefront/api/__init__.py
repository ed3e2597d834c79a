"""HTTP interface for the storefront."""
